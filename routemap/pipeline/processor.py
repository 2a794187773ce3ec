"""Route processing orchestration.

A run resolves every route's anchors and street names, stitches the
resolved geometry into connected segments and hands the finished routes to
the renderer. Starting a new run cancels whatever the previous run still
had in flight; a superseded run never reports anything.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Mapping, Protocol, Sequence

from routemap.common.cancellation import CancellationScope
from routemap.common.config_loader import PipelineSettings
from routemap.common.ids import generate_run_id
from routemap.common.logging import get_logger, log_event
from routemap.common.models import (
    DriverLocation,
    GeoPoint,
    NamedGeometry,
    ProcessedRoute,
    Provenance,
    RawRoute,
)
from routemap.geocode.geocoder import Geocoder
from routemap.geocode.names import split_path
from routemap.geocode.synthetic import default_anchor, synthesize
from routemap.routing.stitch import Router, build_route

ERROR_PREFIX = "Failed to process routes: "


class PipelineState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


class RouteRenderer(Protocol):
    def on_routes_processed(self, routes: Sequence[ProcessedRoute]) -> None: ...

    def on_progress(self, fraction: float) -> None: ...

    def on_error(self, message: str) -> None: ...

    def on_driver_locations_changed(self, drivers: Sequence[DriverLocation]) -> None: ...


class ProgressTracker:
    def __init__(self, total_steps: int, emit: Callable[[float], None]) -> None:
        self.total_steps = max(total_steps, 1)
        self.completed = 0
        self.value = 0.0
        self.emit = emit

    def start(self) -> None:
        self.emit(0.0)

    def advance(self, steps: int = 1) -> None:
        self.completed = min(self.completed + steps, self.total_steps)
        fraction = min(self.completed / self.total_steps, 1.0)
        if fraction > self.value:
            self.value = fraction
            self.emit(fraction)

    def complete(self) -> None:
        self.value = 1.0
        self.emit(1.0)


@dataclass(frozen=True)
class _ResolvedRoute:
    route: RawRoute
    path_names: tuple[str, ...]
    start_point: GeoPoint
    end_point: GeoPoint
    geometries: tuple[NamedGeometry, ...]


def _steps_for(route: RawRoute, delimiter: str) -> int:
    # two anchors, one step per street, one for stitching
    return 2 + len(split_path(route.path, delimiter)) + 1


def _coerce_route(route: RawRoute | Mapping[str, Any]) -> RawRoute:
    if isinstance(route, RawRoute):
        return route
    return RawRoute.from_dict(route)


class RoutePipeline:
    def __init__(
        self,
        geocoder: Geocoder,
        router: Router,
        renderer: RouteRenderer,
        settings: PipelineSettings | None = None,
        *,
        request_delay_seconds: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.geocoder = geocoder
        self.router = router
        self.renderer = renderer
        self.settings = settings or PipelineSettings()
        if request_delay_seconds is None:
            request_delay_seconds = geocoder.settings.request_delay_seconds
        self.request_delay_seconds = request_delay_seconds
        self.logger = logger or get_logger("pipeline")
        self.state = PipelineState.IDLE
        self.loading = False
        self.error: str | None = None
        self.progress = 0.0
        self.routes: list[ProcessedRoute] = []
        self._scope = CancellationScope()

    def _emit_progress(self, scope: CancellationScope) -> Callable[[float], None]:
        def _emit(fraction: float) -> None:
            if scope is not self._scope:
                return
            self.progress = fraction
            self.renderer.on_progress(fraction)

        return _emit

    def _enter_scope(self, scope: CancellationScope) -> None:
        if self._scope is scope:
            return
        cancelled = self._scope.cancel()
        if cancelled:
            log_event(
                self.logger,
                f"cancelled {cancelled} requests from previous run",
                event="RUN_CANCELLED",
                status="cancelled",
            )
        self._scope = scope

    def cancel(self) -> None:
        self._scope.cancel()
        if self.state is PipelineState.PROCESSING:
            self.state = PipelineState.IDLE
        self.loading = False

    def submit(self, routes: Sequence[RawRoute | Mapping[str, Any]]) -> "asyncio.Task[list[ProcessedRoute]]":
        scope = CancellationScope()
        self._enter_scope(scope)
        task = asyncio.ensure_future(self.run(routes, scope=scope))
        scope.adopt(task)
        return task

    async def run(
        self,
        routes: Sequence[RawRoute | Mapping[str, Any]],
        *,
        scope: CancellationScope | None = None,
    ) -> list[ProcessedRoute]:
        scope = scope or CancellationScope()
        self._enter_scope(scope)
        run_id = generate_run_id()
        raw_routes = [_coerce_route(route) for route in routes]
        delimiter = self.settings.path_delimiter

        self.state = PipelineState.PROCESSING
        self.loading = True
        self.error = None
        progress = ProgressTracker(
            sum(_steps_for(route, delimiter) for route in raw_routes),
            self._emit_progress(scope),
        )
        progress.start()
        log_event(self.logger, f"processing {len(raw_routes)} routes", run_id=run_id, event="RUN_START", status="ok")

        try:
            resolved = await asyncio.gather(
                *(scope.spawn(self._resolve_route(route, progress, run_id)) for route in raw_routes)
            )
            processed = await asyncio.gather(
                *(scope.spawn(self._stitch_route(item, progress)) for item in resolved)
            )
            if scope is not self._scope:
                raise asyncio.CancelledError("superseded by a newer run")

            self.routes = list(processed)
            self.state = PipelineState.DONE
            self.renderer.on_routes_processed(self.routes)
            log_event(self.logger, f"processed {len(processed)} routes", run_id=run_id, event="RUN_END", status="ok")
            return self.routes
        except asyncio.CancelledError:
            if scope is self._scope:
                self.state = PipelineState.IDLE
            log_event(self.logger, "run cancelled", run_id=run_id, event="RUN_CANCELLED", status="cancelled")
            raise
        except Exception as exc:
            # sibling routes must not keep querying providers for a failed run
            current = asyncio.current_task()
            scope.cancel(spare=current)
            await scope.drain(spare=current)
            self.state = PipelineState.FAILED
            self.error = f"{ERROR_PREFIX}{exc}"
            log_event(
                self.logger,
                self.error,
                level=logging.ERROR,
                run_id=run_id,
                event="RUN_FAIL",
                status="error",
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            self.renderer.on_error(self.error)
            return []
        finally:
            if scope is self._scope:
                self.loading = False
                progress.complete()

    async def _resolve_anchor(self, name: str, index: int, route_name: str) -> tuple[GeoPoint | None, GeoPoint]:
        point = await self.geocoder.resolve_location(name)
        log_event(
            self.logger,
            f"anchor {name!r} {'resolved' if point is not None else 'defaulted'}",
            event="ANCHOR_RESOLVED",
            route=route_name,
            status="ok" if point is not None else "default",
        )
        if point is None:
            return None, default_anchor(index, self.settings.default_origin)
        return point, point

    async def _resolve_street(
        self,
        name: str,
        index: int,
        total: int,
        start_anchor: GeoPoint | None,
        end_anchor: GeoPoint | None,
        route_name: str,
    ) -> NamedGeometry:
        try:
            return await self.geocoder.resolve_street(
                name,
                index=index,
                total=total,
                start_anchor=start_anchor,
                end_anchor=end_anchor,
            )
        except Exception as exc:
            log_event(
                self.logger,
                f"failed to geocode street {name!r}: {exc}",
                level=logging.WARNING,
                event="STREET_FALLBACK",
                route=route_name,
                street=name,
                status="error",
                provenance=Provenance.SYNTHETIC.value,
                error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
            )
            return synthesize(name, index, start_anchor, end_anchor, total=total, origin=self.settings.default_origin)

    async def _resolve_route(self, route: RawRoute, progress: ProgressTracker, run_id: str) -> _ResolvedRoute:
        route_name = f"{route.start} -> {route.end_destination}"
        path_names = split_path(route.path, self.settings.path_delimiter)

        async def _anchor(name: str, index: int) -> tuple[GeoPoint | None, GeoPoint]:
            result = await self._resolve_anchor(name, index, route_name)
            progress.advance()
            return result

        (start_found, start_point), (end_found, end_point) = await asyncio.gather(
            _anchor(route.start, 0),
            _anchor(route.end_destination, 1),
        )

        geometries: list[NamedGeometry] = []
        for idx, name in enumerate(path_names):
            geometry = await self._resolve_street(name, idx, len(path_names), start_found, end_found, route_name)
            geometries.append(geometry)
            progress.advance()
            used_provider = not geometry.cached and geometry.provenance is not Provenance.KNOWN
            if used_provider and idx < len(path_names) - 1 and self.request_delay_seconds > 0:
                await asyncio.sleep(self.request_delay_seconds)

        log_event(
            self.logger,
            f"resolved {len(geometries)} streets",
            run_id=run_id,
            event="STREETS_RESOLVED",
            route=route_name,
            status="ok",
        )
        return _ResolvedRoute(
            route=route,
            path_names=tuple(path_names),
            start_point=start_point,
            end_point=end_point,
            geometries=tuple(geometries),
        )

    async def _stitch_route(self, resolved: _ResolvedRoute, progress: ProgressTracker) -> ProcessedRoute:
        segments = await build_route(
            resolved.path_names,
            resolved.geometries,
            resolved.start_point,
            resolved.end_point,
            self.router,
        )
        progress.advance()
        processed = ProcessedRoute(
            route=resolved.route,
            start_point=resolved.start_point,
            end_point=resolved.end_point,
            end_destination=resolved.route.end_destination,
            path_names=resolved.path_names,
            geometries=resolved.geometries,
            segments=tuple(segments),
        )
        stop_points = await self._locate_stops(processed)
        if not stop_points:
            return processed
        return replace(processed, stop_points=stop_points)

    async def _locate_stops(self, route: ProcessedRoute) -> dict[str, GeoPoint]:
        """Geocode stops that none of the route's resolved geometry accounts for."""
        found: dict[str, GeoPoint] = {}
        for _, destination in route.stop_destinations():
            if destination in found or route.geometry_point(destination) is not None:
                continue
            try:
                point = await self.geocoder.resolve_location(destination)
            except Exception as exc:
                log_event(
                    self.logger,
                    f"failed to geocode stop {destination!r}: {exc}",
                    level=logging.WARNING,
                    event="STOP_UNRESOLVED",
                    route=f"{route.route.start} -> {route.end_destination}",
                    status="error",
                    error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                )
                continue
            if point is not None:
                found[destination] = point
        return found
