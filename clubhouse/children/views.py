from fastapi import APIRouter, BackgroundTasks, Depends

from clubhouse.children import service as children_service
from clubhouse.children.models import ChildrenSubmission
from clubhouse.utils.rate_limit import optional_rate_limit

router = APIRouter(prefix="/api/v1/children", tags=["Children API"])

@router.post("", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def submit_children(body: ChildrenSubmission, background_tasks: BackgroundTasks):
    """
    Enregistre les fiches enfants d'une réservation payée (une seule fois) et la passe à 'complete'.
    - 400 validation_error / count_mismatch, 404 booking_not_found,
      409 invalid_state / already_submitted
    """
    result = children_service.submit_children(body.booking_id, body.children, schedule=background_tasks.add_task)
    return {"success": True, **result}
