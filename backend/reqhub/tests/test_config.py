import pytest

from reqhub import models, schemas
from reqhub.errors import HasDependencies, ValidationError
from reqhub.services import config
from conftest import make_user, new_epic, new_requirement, new_story


def test_seed_is_idempotent(db):
    first = config.seed_defaults(db)
    assert first == {"requirement_types": 5, "relationship_types": 5, "status_models": 3}
    second = config.seed_defaults(db)
    assert second == {"requirement_types": 0, "relationship_types": 0, "status_models": 0}
    names = [t.name for t in config.list_requirement_types(db)]
    assert names == sorted(names)
    assert "Functional" in names


def test_type_names_are_unique(seeded):
    with pytest.raises(ValidationError):
        config.create_requirement_type(seeded, schemas.TypeCreate(name="Functional"))
    created = config.create_relationship_type(seeded, schemas.TypeCreate(name="duplicates"))
    with pytest.raises(ValidationError):
        config.update_relationship_type(seeded, created.id, schemas.TypeUpdate(name="blocks"))
    renamed = config.update_relationship_type(
        seeded, created.id, schemas.TypeUpdate(description="Same as target")
    )
    assert renamed.name == "duplicates"
    assert renamed.description == "Same as target"


def test_type_in_use_cannot_be_deleted(db, functional_type):
    user = make_user(db)
    epic = new_epic(db, user)
    story = new_story(db, user, epic)
    new_requirement(db, user, story, functional_type)
    with pytest.raises(HasDependencies):
        config.delete_requirement_type(db, functional_type.id)
    spare = config.create_requirement_type(db, schemas.TypeCreate(name="Spare"))
    config.delete_requirement_type(db, spare.id)
    assert db.query(models.RequirementType).filter_by(name="Spare").first() is None


def test_config_api(client, admin_headers, editor_headers):
    resp = client.post("/api/config/seed", headers=editor_headers)
    assert resp.status_code == 403

    resp = client.post("/api/config/seed", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["requirement_types"] == 5

    types = client.get("/api/config/requirement-types", headers=editor_headers).json()
    assert len(types) == 5

    resp = client.post(
        "/api/config/relationship-types",
        json={"name": "verifies", "description": "Test verifies behaviour"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    type_id = resp.json()["id"]
    assert client.delete(
        f"/api/config/relationship-types/{type_id}", headers=admin_headers
    ).status_code == 204
