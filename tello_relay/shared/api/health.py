from fastapi import APIRouter, Request

from .utils import ApiSuccess


router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health(request: Request):
    controller = getattr(request.app.state, 'relay_controller', None)
    relay_state = str(controller.status.state) if controller is not None else None
    return ApiSuccess(results={'status': 'OK', 'relay_state': relay_state})
