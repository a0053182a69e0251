from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import get_current_user, require_config_manager
from .. import models, schemas
from ..services import config, status_models

router = APIRouter(prefix="/api/config", tags=["config"])


@router.get("/requirement-types", response_model=list[schemas.TypeOut])
async def list_requirement_types(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return config.list_requirement_types(db)


@router.post("/requirement-types", response_model=schemas.TypeOut, status_code=201)
async def create_requirement_type(
    payload: schemas.TypeCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return config.create_requirement_type(db, payload)


@router.get("/requirement-types/{type_id}", response_model=schemas.TypeOut)
async def get_requirement_type(
    type_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return config.get_requirement_type(db, type_id)


@router.put("/requirement-types/{type_id}", response_model=schemas.TypeOut)
async def update_requirement_type(
    type_id: UUID,
    payload: schemas.TypeUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return config.update_requirement_type(db, type_id, payload)


@router.delete("/requirement-types/{type_id}", status_code=204)
async def delete_requirement_type(
    type_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    config.delete_requirement_type(db, type_id)


@router.get("/relationship-types", response_model=list[schemas.TypeOut])
async def list_relationship_types(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return config.list_relationship_types(db)


@router.post("/relationship-types", response_model=schemas.TypeOut, status_code=201)
async def create_relationship_type(
    payload: schemas.TypeCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return config.create_relationship_type(db, payload)


@router.get("/relationship-types/{type_id}", response_model=schemas.TypeOut)
async def get_relationship_type(
    type_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return config.get_relationship_type(db, type_id)


@router.put("/relationship-types/{type_id}", response_model=schemas.TypeOut)
async def update_relationship_type(
    type_id: UUID,
    payload: schemas.TypeUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return config.update_relationship_type(db, type_id, payload)


@router.delete("/relationship-types/{type_id}", status_code=204)
async def delete_relationship_type(
    type_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    config.delete_relationship_type(db, type_id)


@router.get("/status-models", response_model=list[schemas.StatusModelOut])
async def list_status_models(
    entity_type: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return status_models.list_status_models(db, entity_type)


@router.post("/status-models", response_model=schemas.StatusModelOut, status_code=201)
async def create_status_model(
    payload: schemas.StatusModelCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return status_models.create_status_model(db, payload)


@router.get("/status-models/default/{entity_type}", response_model=schemas.StatusModelOut)
async def get_default_status_model(
    entity_type: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return status_models.get_default_model_or_404(db, entity_type)


@router.get("/status-models/default/{entity_type}/transitions", response_model=list[schemas.StatusOut])
async def get_available_transitions(
    entity_type: str,
    from_status: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return status_models.get_available_transitions(db, entity_type, from_status)


@router.post("/status-models/validate-transition")
async def validate_transition(
    payload: schemas.TransitionCheck,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    status_models.validate_transition(db, payload.entity_type, payload.from_status, payload.to_status)
    return {"valid": True}


@router.get("/status-models/{model_id}", response_model=schemas.StatusModelOut)
async def get_status_model(
    model_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return status_models.get_status_model(db, model_id)


@router.put("/status-models/{model_id}", response_model=schemas.StatusModelOut)
async def update_status_model(
    model_id: UUID,
    payload: schemas.StatusModelUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return status_models.update_status_model(db, model_id, payload)


@router.delete("/status-models/{model_id}", status_code=204)
async def delete_status_model(
    model_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    status_models.delete_status_model(db, model_id)


@router.post("/status-models/{model_id}/statuses", response_model=schemas.StatusOut, status_code=201)
async def create_status(
    model_id: UUID,
    payload: schemas.StatusCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return status_models.create_status(db, model_id, payload)


@router.put("/statuses/{status_id}", response_model=schemas.StatusOut)
async def update_status(
    status_id: UUID,
    payload: schemas.StatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return status_models.update_status(db, status_id, payload)


@router.delete("/statuses/{status_id}", status_code=204)
async def delete_status(
    status_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    status_models.delete_status(db, status_id)


@router.post(
    "/status-models/{model_id}/transitions",
    response_model=schemas.TransitionOut,
    status_code=201,
)
async def create_transition(
    model_id: UUID,
    payload: schemas.TransitionCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return status_models.create_transition(db, model_id, payload)


@router.delete("/transitions/{transition_id}", status_code=204)
async def delete_transition(
    transition_id: UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    status_models.delete_transition(db, transition_id)


@router.post("/seed")
async def seed_defaults(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_config_manager(user)
    return config.seed_defaults(db)
