"""Relay session endpoints for the playback client.

The client polls ``get_status`` and points its player at ``stream_url`` only
while ``is_playable`` is true.
"""

from fastapi import APIRouter, Depends, Request

from tello_relay.api.v1.schemas.base import ApiOut
from tello_relay.api.v1.schemas.relay import PlaybackEventIn, SessionStatusOut
from tello_relay.domain.relay.controller import RelaySessionController
from tello_relay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/relay")


def get_relay_controller(request: Request) -> RelaySessionController:
    controller = getattr(request.app.state, "relay_controller", None)
    if controller is None:
        raise AppError(
            errcode=AppErrorCode.E_INTERNAL_ERROR,
            errmesg="Relay controller is not initialized",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )
    return controller


@router.get("/status")
async def get_status(
    controller: RelaySessionController = Depends(get_relay_controller),
) -> ApiOut[SessionStatusOut]:
    """Get the current relay session status."""
    return ApiOut[SessionStatusOut](results=SessionStatusOut.from_status(controller.status))


@router.post("/start")
async def start_relay(
    controller: RelaySessionController = Depends(get_relay_controller),
) -> ApiOut[SessionStatusOut]:
    """Bind the command socket, run the device handshake and launch the relay.

    Failures do not produce an error response: the returned status is ERROR
    with ``error_message`` set. A no-op while already handshaking or streaming.
    """
    status = await controller.start()
    return ApiOut[SessionStatusOut](results=SessionStatusOut.from_status(status))


@router.post("/stop")
async def stop_relay(
    controller: RelaySessionController = Depends(get_relay_controller),
) -> ApiOut[SessionStatusOut]:
    """Cancel the relay and close the command socket. Always succeeds."""
    status = await controller.stop()
    return ApiOut[SessionStatusOut](results=SessionStatusOut.from_status(status))


@router.post("/playback_event")
async def playback_event(
    body: PlaybackEventIn,
    controller: RelaySessionController = Depends(get_relay_controller),
) -> ApiOut[SessionStatusOut]:
    """Report a player event: ``loaded`` clears a player error, ``error`` records one."""
    if body.event == "loaded":
        status = controller.report_playback_loaded()
    else:
        if not body.message:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="message is required for an error event",
                status_code=HttpStatusCode.BAD_REQUEST,
            )
        status = controller.report_playback_error(body.message)

    return ApiOut[SessionStatusOut](results=SessionStatusOut.from_status(status))
