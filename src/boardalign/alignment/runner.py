"""Multi-board alignment state machine.

The AlignmentStateMachine aligns a list of BoardLocations one at a time:

1. Init: snapshot the board, clear its transform, collect the fiducials on
   the board's side and order them for travel
2. AwaitMeasurement: locate automatic fiducials, or move near manual ones
   and wait for the operator to confirm the camera position
3. ComputeTransform: fit the design->machine transform and set it together
   with the new board origin
4. Validate: check the fit against the tolerances, roll back on failure
5. AdvanceBoard: move on to the next board, or finish (Done)

Cancelled is reachable from every state. All hardware and vision requests go
through a single-worker MachineTaskQueue, so no two measurements overlap.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel, Field

from boardalign.alignment.exceptions import (
    AlignmentError,
    DegenerateGeometryError,
    InsufficientFiducialsError,
    LocateError,
    ToleranceViolationError,
    UserCancelled,
)
from boardalign.alignment.gates import AutoProceedGate
from boardalign.alignment.protocol import (
    FiducialLocator,
    GateDecision,
    MotionController,
    SessionObserver,
    UserGate,
)
from boardalign.alignment.session import (
    AlignmentSession,
    AlignmentState,
    BoardSnapshot,
    Transition,
)
from boardalign.alignment.solver import AffineTransformSolver
from boardalign.alignment.travel import TravelOptimizer
from boardalign.alignment.validator import (
    MetricViolation,
    Tolerances,
    ToleranceValidator,
)
from boardalign.alignment.worker import MachineTaskQueue, OperationFactory
from boardalign.geometry.affine import AffineDecomposition, AffineTransform
from boardalign.geometry.primitives import LengthUnit, Location
from boardalign.model.board import BoardLocation, Placement, PlacementType, Side
from boardalign.utils.logging import (
    clear_correlation_context,
    get_logger,
    set_correlation_context,
)

T = TypeVar("T")

MIN_FIDUCIALS = 2


# =============================================================================
# Result Models
# =============================================================================


class BoardStatus(str, Enum):
    ALIGNED = "aligned"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


_OK = frozenset({BoardStatus.ALIGNED, BoardStatus.SKIPPED})


class BoardResult(BaseModel):
    """Outcome of aligning one BoardLocation.

    Fit diagnostics are filled in whenever a transform was fitted, including
    for boards that then failed validation and were rolled back.

    Attributes:
        board_location_id: The BoardLocation id.
        status: Aligned, failed, cancelled or skipped.
        transform: Fitted (candidate) transform.
        decomposition: Scale/shear/rotation of the fitted transform.
        origin_offset_mm: Movement of the board origin caused by the fit.
        new_location: Board origin derived from the fit.
        residual_rms_mm: RMS distance between mapped and measured fiducials.
        violations: Tolerance violations, empty unless validation failed.
        error_message: Cause of failure or cancellation.
    """

    board_location_id: str
    status: BoardStatus
    transform: AffineTransform | None = None
    decomposition: AffineDecomposition | None = None
    origin_offset_mm: float | None = None
    new_location: Location | None = None
    residual_rms_mm: float | None = None
    violations: list[MetricViolation] = Field(default_factory=list)
    error_message: str | None = None


class AlignmentRunResult(BaseModel):
    """Result of a full alignment run.

    Attributes:
        run_id: Correlation id of the run (also present in log events).
        success: True when every processed board was aligned.
        cancelled: True when the run ended by cancellation.
        boards: Per-board results in processing order.
        transitions: Every state transition, for diagnostics.
        error_message: First failure or the cancellation cause.
    """

    run_id: str
    success: bool = False
    cancelled: bool = False
    boards: list[BoardResult] = Field(default_factory=list)
    transitions: list[Transition] = Field(default_factory=list)
    error_message: str | None = None

    def board(self, board_location_id: str) -> BoardResult | None:
        for result in self.boards:
            if result.board_location_id == board_location_id:
                return result
        return None


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class AlignmentConfig:
    """Configuration for AlignmentStateMachine behavior.

    Attributes:
        tolerances: Accuracy bounds for accepting a fit.
        travel_max_passes: 2-opt pass budget for fiducial ordering.
        suspend_on_locate_error: If True, a failed locate pauses the run until
            it is cancelled externally; otherwise it fails the board.
        continue_on_board_failure: If True, a failed board is rolled back and
            the run continues with the next board; otherwise the run stops.
        skip_disabled: If True, disabled BoardLocations are reported as
            skipped instead of being aligned.
    """

    tolerances: Tolerances = field(default_factory=Tolerances)
    travel_max_passes: int = 50
    suspend_on_locate_error: bool = True
    continue_on_board_failure: bool = False
    skip_disabled: bool = True


class LoggingObserver:
    """SessionObserver that only logs notifications."""

    def __init__(self) -> None:
        self._log = get_logger(__name__)

    def on_board_aligned(self, result: BoardResult) -> None:
        self._log.info(
            "Board %s aligned: %s, origin moved %.4fmm",
            result.board_location_id,
            result.decomposition,
            result.origin_offset_mm or 0.0,
        )

    def on_board_failed(
        self, board_location: BoardLocation, error: AlignmentError
    ) -> None:
        self._log.error("Board %s failed: %s", board_location.id, error)

    def on_run_complete(self, result: AlignmentRunResult) -> None:
        if result.cancelled:
            self._log.info("Alignment run %s cancelled", result.run_id)
        elif result.success:
            self._log.info(
                "Alignment run %s complete: %d boards",
                result.run_id,
                len(result.boards),
            )
        else:
            self._log.warning(
                "Alignment run %s failed: %s", result.run_id, result.error_message
            )


# =============================================================================
# Helpers
# =============================================================================


def expected_local(board_location: BoardLocation, placement: Placement) -> Location:
    """Design-local fiducial point in mm, mirrored in X for the bottom side."""
    local = placement.location.convert_to_units(LengthUnit.MILLIMETERS)
    if board_location.side is Side.BOTTOM:
        local = local.invert(x=True)
    return local


def origin_local(board_location: BoardLocation) -> Location:
    """Design-local point that the board origin corresponds to.

    On the bottom side the board is flipped, so the machine origin sits at
    the far edge of the design, (width, 0).
    """
    dims = board_location.board.dimensions
    if board_location.side is Side.BOTTOM:
        return Location(units=dims.units, x=dims.x)
    return Location(units=dims.units)


# =============================================================================
# State Machine
# =============================================================================


class AlignmentStateMachine:
    """Aligns BoardLocations by measuring their fiducials.

    Capabilities are injected at construction; the machine owns the
    BoardLocation being aligned until its session ends.

    Usage:
        machine = AlignmentStateMachine(
            board_locations,
            locator=camera,
            motion=camera,
            gate=QueueUserGate(),
            config=AlignmentConfig(tolerances=settings.tolerances()),
        )
        result = await machine.run()
    """

    def __init__(
        self,
        board_locations: Sequence[BoardLocation],
        *,
        locator: FiducialLocator,
        motion: MotionController,
        gate: UserGate | None = None,
        observer: SessionObserver | None = None,
        config: AlignmentConfig | None = None,
    ) -> None:
        self.board_locations = list(board_locations)
        self.config = config or AlignmentConfig()
        self._locator = locator
        self._motion = motion
        self._gate: UserGate = gate or AutoProceedGate()
        self._observer: SessionObserver = observer or LoggingObserver()
        self._solver = AffineTransformSolver()
        self._validator = ToleranceValidator(self.config.tolerances)
        self._optimizer: TravelOptimizer[Placement] = TravelOptimizer(
            max_passes=self.config.travel_max_passes
        )
        self._log = get_logger(__name__)

        self._state = AlignmentState.INIT
        self._session: AlignmentSession | None = None
        self._transitions: list[Transition] = []
        self._queue: MachineTaskQueue | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._cancel_event: asyncio.Event | None = None
        self._cancel_requested = False
        self._running = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> AlignmentState:
        return self._state

    @property
    def session(self) -> AlignmentSession | None:
        """The active session, if a board is being aligned."""
        return self._session

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> None:
        """Request cancellation. Safe to call from any thread.

        The request is observed at the next resumption point: after the
        in-flight machine operation completes, or immediately while waiting
        at a user gate or on a suspended locate failure.
        A request made before ``run()`` cancels that run; each run consumes
        the request when it ends.
        """
        self._cancel_requested = True
        loop, event = self._loop, self._cancel_event
        if loop is None or event is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            event.set()
        else:
            loop.call_soon_threadsafe(event.set)

    async def run(self) -> AlignmentRunResult:
        """Align every board and return the run result.

        Returns:
            AlignmentRunResult. Domain failures and cancellation are reported
            in the result; unexpected exceptions roll back the current board
            and propagate.
        """
        if self._running:
            raise RuntimeError("AlignmentStateMachine is already running")
        self._running = True
        self._loop = asyncio.get_running_loop()
        self._cancel_event = asyncio.Event()
        if self._cancel_requested:
            self._cancel_event.set()

        self._transitions = []
        run_id = uuid.uuid4().hex[:12]
        set_correlation_context(run_id=run_id)
        tol = self.config.tolerances
        self._log.debug(
            "Starting alignment of %d boards: scaling_tolerance=%s "
            "shearing_tolerance=%s board_location_tolerance=%s",
            len(self.board_locations),
            tol.scaling_tolerance,
            tol.shearing_tolerance,
            tol.board_location_tolerance,
        )

        boards: list[BoardResult] = []
        cancelled = False
        error_message: str | None = None
        try:
            async with MachineTaskQueue() as queue:
                self._queue = queue
                for index, board_location in enumerate(self.board_locations):
                    if not board_location.enabled and self.config.skip_disabled:
                        self._log.info("Skipping disabled board %s", board_location.id)
                        boards.append(
                            BoardResult(
                                board_location_id=board_location.id,
                                status=BoardStatus.SKIPPED,
                            )
                        )
                        continue

                    board_result = await self._align_board(board_location, index)
                    boards.append(board_result)
                    if board_result.status is BoardStatus.CANCELLED:
                        cancelled = True
                        error_message = board_result.error_message
                        break
                    if board_result.status is BoardStatus.FAILED:
                        error_message = error_message or board_result.error_message
                        if not self.config.continue_on_board_failure:
                            break
                    self._transition(AlignmentState.ADVANCE_BOARD, board_location)

            final = AlignmentState.CANCELLED if cancelled else AlignmentState.DONE
            self._transition(final, None)
            run_result = AlignmentRunResult(
                run_id=run_id,
                success=not cancelled and all(b.status in _OK for b in boards),
                cancelled=cancelled,
                boards=boards,
                transitions=list(self._transitions),
                error_message=error_message,
            )
            self._observer.on_run_complete(run_result)
            return run_result
        finally:
            self._queue = None
            self._session = None
            self._running = False
            # a request consumed by this run does not carry over to the next
            self._cancel_requested = False
            self._cancel_event = None
            self._loop = None
            clear_correlation_context()

    # ------------------------------------------------------------------
    # Per-board flow
    # ------------------------------------------------------------------

    async def _align_board(
        self, board_location: BoardLocation, index: int
    ) -> BoardResult:
        self._transition(AlignmentState.INIT, board_location)
        session = AlignmentSession(
            board_location=board_location,
            board_index=index,
            board_count=len(self.board_locations),
            snapshot=BoardSnapshot.capture(board_location),
        )
        self._session = session
        try:
            await self._init_session(session)
            await self._measure_all(session)
            self._compute_transform(session)
            self._validate(session)
        except UserCancelled as e:
            session.rollback()
            self._log.info(
                "Board %s cancelled, restored to %s",
                board_location.id,
                session.snapshot.location,
            )
            cause = e.__cause__ if isinstance(e.__cause__, AlignmentError) else e
            return self._board_result(session, BoardStatus.CANCELLED, str(cause))
        except AlignmentError as e:
            session.rollback()
            self._observer.on_board_failed(board_location, e)
            violations = (
                list(e.violations) if isinstance(e, ToleranceViolationError) else []
            )
            return self._board_result(
                session, BoardStatus.FAILED, str(e), violations=violations
            )
        except BaseException:
            session.rollback()
            raise
        else:
            session.commit()
            result = self._board_result(session, BoardStatus.ALIGNED, None)
            self._observer.on_board_aligned(result)
            return result
        finally:
            self._session = None

    async def _init_session(self, session: AlignmentSession) -> None:
        board_location = session.board_location
        self._check_cancelled(board_location)

        # Measurement must not be biased by a stale mapping
        board_location.transform = None

        fiducials = board_location.fiducials()
        if len(fiducials) < MIN_FIDUCIALS:
            raise InsufficientFiducialsError(
                len(fiducials), board_location.id, required=MIN_FIDUCIALS
            )

        start = await self._machine(self._motion.current_location, "current_location")
        self._check_cancelled(board_location)

        session.placements = self._optimizer.optimize(
            fiducials,
            locator=lambda p: board_location.placement_location(p.location),
            start=start,
            end=board_location.location,
        )
        self._log.debug(
            "Visiting order for %s: %s",
            board_location.id,
            ", ".join(p.id for p in session.placements),
        )

    async def _measure_all(self, session: AlignmentSession) -> None:
        board_location = session.board_location
        while (placement := session.current_placement) is not None:
            self._transition(
                AlignmentState.AWAIT_MEASUREMENT, board_location, detail=placement.id
            )
            if placement.type is PlacementType.FIDUCIAL_MANUAL:
                measured = await self._measure_manual(session, placement)
            else:
                measured = await self._measure_automatic(session, placement)
            self._log.debug("Measured %s at %s", placement.id, measured)
            session.record(expected_local(board_location, placement), measured)

    async def _measure_automatic(
        self, session: AlignmentSession, placement: Placement
    ) -> Location:
        board_location = session.board_location
        try:
            measured = await self._machine(
                lambda: self._locator.locate(board_location, placement),
                f"locate {placement.id}",
            )
        except LocateError as e:
            error = e
            if e.board_location_id is None:
                error = LocateError(
                    e.message,
                    board_location.id,
                    placement_id=e.placement_id or placement.id,
                )
                error.__cause__ = e
            if not self.config.suspend_on_locate_error:
                raise error

            self._observer.on_board_failed(board_location, error)
            self._log.warning("%s; waiting for cancellation", error)
            await self._wait_for_cancel()
            raise UserCancelled(board_location_id=board_location.id) from error
        self._check_cancelled(board_location)
        return measured

    async def _measure_manual(
        self, session: AlignmentSession, placement: Placement
    ) -> Location:
        board_location = session.board_location
        target = board_location.placement_location(placement.location)
        await self._machine(
            lambda: self._motion.move_near(target), f"move to {placement.id}"
        )
        self._check_cancelled(board_location)

        decision = await self._present_gate(
            board_location,
            title=f"{session.progress} | Set correct part location",
            instructions=f"Move camera to '{placement.id}' location",
            proceed_label="Next",
        )
        if decision is GateDecision.CANCEL:
            raise UserCancelled(board_location_id=board_location.id)

        measured = await self._machine(
            self._motion.current_location, "current_location"
        )
        self._check_cancelled(board_location)
        return measured

    def _compute_transform(self, session: AlignmentSession) -> None:
        board_location = session.board_location
        self._transition(AlignmentState.COMPUTE_TRANSFORM, board_location)

        try:
            transform = self._solver.solve(session.expected, session.measured)
        except DegenerateGeometryError as e:
            raise DegenerateGeometryError(e.message, board_location.id) from e
        residuals = self._solver.residuals(
            transform, session.expected, session.measured
        )
        self._log.info(
            "Fitted %s for %s: %s (residual rms %.4fmm, max %.4fmm)",
            "similarity" if len(session.expected) == 2 else "affine",
            board_location.id,
            transform.decompose(),
            residuals.rms,
            residuals.max,
        )

        old = session.snapshot.location
        new_location = (
            board_location.placement_location(origin_local(board_location), transform)
            .convert_to_units(old.units)
            .derive(z=old.z)
        )
        board_location.set_location_and_transform(new_location, transform)

        offset_mm = new_location.convert_to_units(
            LengthUnit.MILLIMETERS
        ).linear_distance_to(old)
        self._log.info(
            "Board %s origin %s -> %s (moved %.4fmm)",
            board_location.id,
            old,
            new_location,
            offset_mm,
        )
        session.candidate_transform = transform
        session.candidate_location = new_location
        session.origin_offset_mm = offset_mm
        session.residual_rms_mm = residuals.rms

    def _validate(self, session: AlignmentSession) -> None:
        board_location = session.board_location
        self._transition(AlignmentState.VALIDATE, board_location)
        assert session.candidate_transform is not None
        assert session.origin_offset_mm is not None
        self._validator.validate(
            session.candidate_transform,
            session.origin_offset_mm,
            strict=True,
            board_location_id=board_location.id,
        )

    # ------------------------------------------------------------------
    # Suspension points
    # ------------------------------------------------------------------

    async def _machine(self, factory: OperationFactory[T], name: str) -> T:
        assert self._queue is not None
        return await self._queue.run(factory, name=name)

    async def _present_gate(
        self,
        board_location: BoardLocation,
        *,
        title: str,
        instructions: str,
        proceed_label: str,
    ) -> GateDecision:
        """Wait for the operator, or for a cancel request, whichever comes first."""
        assert self._cancel_event is not None
        gate_task = asyncio.ensure_future(
            self._gate.present(title, instructions, proceed_label, True)
        )
        cancel_task = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait(
                {gate_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (gate_task, cancel_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(gate_task, cancel_task, return_exceptions=True)

        if self._cancel_event.is_set():
            raise UserCancelled(board_location_id=board_location.id)
        return gate_task.result()

    async def _wait_for_cancel(self) -> None:
        assert self._cancel_event is not None
        await self._cancel_event.wait()

    def _check_cancelled(self, board_location: BoardLocation) -> None:
        if self._cancel_requested or (
            self._cancel_event is not None and self._cancel_event.is_set()
        ):
            raise UserCancelled(board_location_id=board_location.id)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _transition(
        self,
        target: AlignmentState,
        board_location: BoardLocation | None,
        *,
        detail: str | None = None,
    ) -> None:
        source = self._state if self._transitions else None
        self._state = target
        board_id = board_location.id if board_location is not None else None
        set_correlation_context(board_id=board_id, state=target.value)
        self._transitions.append(
            Transition(
                board_location_id=board_id, source=source, target=target, detail=detail
            )
        )
        self._log.debug(
            "transition",
            source=source.value if source is not None else None,
            target=target.value,
            detail=detail,
        )

    def _board_result(
        self,
        session: AlignmentSession,
        status: BoardStatus,
        error_message: str | None,
        *,
        violations: list[MetricViolation] | None = None,
    ) -> BoardResult:
        transform = session.candidate_transform
        return BoardResult(
            board_location_id=session.board_location.id,
            status=status,
            transform=transform,
            decomposition=transform.decompose() if transform is not None else None,
            origin_offset_mm=session.origin_offset_mm,
            new_location=session.candidate_location,
            residual_rms_mm=session.residual_rms_mm,
            violations=violations or [],
            error_message=error_message,
        )
