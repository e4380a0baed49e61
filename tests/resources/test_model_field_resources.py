# tests/resources/test_model_field_resources.py
import pytest

from async_model_resources.base.context import ModelContext, ModelFieldContext
from async_model_resources.base.interfaces import (FieldAccessor, has_id,
                                                   search_element_by_id,
                                                   search_element_by_index)
from async_model_resources.base.responses import ResponseHandler
from async_model_resources.resources import model_resources
from tests.models import Family, InMemoryFamilies, Sibling

SIBLINGS = FieldAccessor("siblings")
BY_ID = search_element_by_id(has_id)
BY_INDEX = search_element_by_index()


@pytest.fixture
def families() -> InMemoryFamilies:
    return InMemoryFamilies()


@pytest.fixture
def handler() -> ResponseHandler:
    return ResponseHandler()


@pytest.fixture
def family(families) -> Family:
    return families.add(
        name="Doe",
        siblings=[
            Sibling(id="s1", name="Ann", age=3),
            Sibling(id="s2", name="Bob", age=5),
        ],
    )


def sibling_context(family_id, sibling_id=None) -> ModelFieldContext:
    return ModelFieldContext(
        name="siblings",
        type=Sibling,
        id=sibling_id,
        model=ModelContext(name="family", type=Family, id=family_id),
    )


# --- Field ---


async def test_retrieve_model_field(families, family, handler):
    response = await model_resources.retrieve_model_field(
        ModelContext(name="family", type=Family, id=family.id),
        families.search,
        SIBLINGS,
        handler,
    )

    assert response.status_code == 200
    assert [sibling["id"] for sibling in response.payload] == ["s1", "s2"]


async def test_retrieve_undefined_model_field(families, handler):
    family = families.add(name="Doe")

    response = await model_resources.retrieve_model_field(
        ModelContext(name="family", type=Family, id=family.id),
        families.search,
        SIBLINGS,
        handler,
    )

    assert response.status_code == 200
    assert response.payload == []


async def test_retrieve_field_of_undefined_model(families, handler):
    response = await model_resources.retrieve_model_field(
        ModelContext(name="family", type=Family, id="undefined"),
        families.search,
        SIBLINGS,
        handler,
    )

    assert response.status_code == 404
    assert response.payload["code"] == "family"


# --- Retrieve element ---


async def test_retrieve_model_field_element(families, family, handler):
    response = await model_resources.retrieve_model_field_element(
        sibling_context(family.id, "s2"), families.search, SIBLINGS, BY_ID, handler
    )

    assert response.status_code == 200
    assert response.payload == {"id": "s2", "name": "Bob", "age": 5}


async def test_retrieve_model_field_element_by_index(families, family, handler):
    response = await model_resources.retrieve_model_field_element(
        sibling_context(family.id, "0"), families.search, SIBLINGS, BY_INDEX, handler
    )

    assert response.status_code == 200
    assert response.payload["id"] == "s1"


async def test_retrieve_undefined_model_field_element(families, family, handler):
    response = await model_resources.retrieve_model_field_element(
        sibling_context(family.id, "undefined"), families.search, SIBLINGS, BY_ID, handler
    )

    assert response.status_code == 404
    assert response.payload["code"] == "family_siblings"


async def test_retrieve_element_of_undefined_model(families, handler):
    response = await model_resources.retrieve_model_field_element(
        sibling_context("undefined", "s1"), families.search, SIBLINGS, BY_ID, handler
    )

    assert response.status_code == 404
    assert response.payload["code"] == "family"


async def test_retrieve_element_of_null_field(families, handler):
    family = families.add(name="Doe")

    response = await model_resources.retrieve_model_field_element(
        sibling_context(family.id, "0"), families.search, SIBLINGS, BY_INDEX, handler
    )

    assert response.status_code == 404
    assert response.payload["code"] == "family_siblings"


# --- Create element ---


async def test_create_model_field_element(families, family, handler):
    response = await model_resources.create_model_field_element(
        {"name": "Cid", "age": 7},
        sibling_context(family.id),
        families.search,
        SIBLINGS,
        families.update,
        handler,
    )

    assert response.status_code == 201
    assert response.payload["name"] == "Cid"
    assert response.payload["id"] not in (None, "s1", "s2")
    stored = families.stored(family.id)
    assert [sibling.name for sibling in stored.siblings] == ["Ann", "Bob", "Cid"]
    assert stored.siblings[2].id == response.payload["id"]


async def test_create_model_field_element_on_null_field(families, handler):
    family = families.add(name="Doe")

    response = await model_resources.create_model_field_element(
        {"name": "Cid"},
        sibling_context(family.id),
        families.search,
        SIBLINGS,
        families.update,
        handler,
    )

    assert response.status_code == 201
    assert len(families.stored(family.id).siblings) == 1


async def test_create_model_field_element_without_id(families, family, handler):
    response = await model_resources.create_model_field_element(
        {"name": "Cid"},
        sibling_context(family.id),
        families.search,
        SIBLINGS,
        families.update,
        handler,
        id_field=None,
    )

    assert response.status_code == 201
    assert response.payload["id"] is None


async def test_create_model_field_element_with_id_field_not_on_the_element(
    families, family, handler
):
    response = await model_resources.create_model_field_element(
        {"name": "Cid"},
        sibling_context(family.id),
        families.search,
        SIBLINGS,
        families.update,
        handler,
        id_field="label",
    )

    assert response.status_code == 201
    assert response.payload == {"id": None, "name": "Cid", "age": None}
    assert len(families.stored(family.id).siblings) == 3


async def test_retrieve_model_field_with_unexpected_failure(families, family, handler):
    def broken_getter(model):
        raise RuntimeError("Broken accessor")

    response = await model_resources.retrieve_model_field(
        ModelContext(name="family", type=Family, id=family.id),
        families.search,
        FieldAccessor("siblings", getter=broken_getter),
        handler,
    )

    assert response.status_code == 500
    assert response.payload == {"code": "undefined", "message": "Unexpected failure"}
    assert handler.response is response


async def test_create_invalid_model_field_element(families, family, handler):
    response = await model_resources.create_model_field_element(
        {"name": "Cid", "age": 200},
        sibling_context(family.id),
        families.search,
        SIBLINGS,
        families.update,
        handler,
    )

    assert response.status_code == 400
    assert response.payload["code"] == "family.siblings[2].age"
    assert families.updates == 0


async def test_create_model_field_element_with_bad_payload(families, family, handler):
    response = await model_resources.create_model_field_element(
        {"undefined": "Cid"},
        sibling_context(family.id),
        families.search,
        SIBLINGS,
        families.update,
        handler,
    )

    assert response.status_code == 400
    assert response.payload["code"] == "family_siblings"


# --- Update and merge element ---


async def test_update_model_field_element(families, family, handler):
    response = await model_resources.update_model_field_element(
        {"name": "Bea"},
        sibling_context(family.id, "s2"),
        families.search,
        SIBLINGS,
        BY_ID,
        families.update,
        handler,
    )

    assert response.status_code == 200
    assert response.payload == {"id": "s2", "name": "Bea", "age": None}
    stored = families.stored(family.id)
    assert stored.siblings[1].model_dump() == {"id": "s2", "name": "Bea", "age": None}
    assert stored.siblings[0].name == "Ann"
    assert stored.last_update_ts is not None


async def test_update_model_field_element_equal_to_original(families, family, handler):
    response = await model_resources.update_model_field_element(
        {"name": "Ann", "age": 3},
        sibling_context(family.id, "s1"),
        families.search,
        SIBLINGS,
        BY_ID,
        families.update,
        handler,
    )

    assert response.status_code == 400
    assert response.payload["code"] == "family_siblings_to_update_equal_to_original"
    assert families.updates == 0


async def test_update_undefined_model_field_element(families, family, handler):
    response = await model_resources.update_model_field_element(
        {"name": "Bea"},
        sibling_context(family.id, "s3"),
        families.search,
        SIBLINGS,
        BY_ID,
        families.update,
        handler,
    )

    assert response.status_code == 404
    assert response.payload["code"] == "family_siblings"


async def test_merge_model_field_element(families, family, handler):
    response = await model_resources.merge_model_field_element(
        {"age": 6},
        sibling_context(family.id, "1"),
        families.search,
        SIBLINGS,
        BY_INDEX,
        families.update,
        handler,
    )

    assert response.status_code == 200
    assert response.payload == {"id": "s2", "name": "Bob", "age": 6}
    assert families.stored(family.id).siblings[1].age == 6


async def test_merge_model_field_element_equal_to_original(families, family, handler):
    response = await model_resources.merge_model_field_element(
        {"age": 5},
        sibling_context(family.id, "s2"),
        families.search,
        SIBLINGS,
        BY_ID,
        families.update,
        handler,
    )

    assert response.status_code == 400
    assert response.payload["code"] == "family_siblings_to_merge_equal_to_original"


async def test_merge_invalid_model_field_element(families, family, handler):
    response = await model_resources.merge_model_field_element(
        {"age": -3},
        sibling_context(family.id, "s2"),
        families.search,
        SIBLINGS,
        BY_ID,
        families.update,
        handler,
    )

    assert response.status_code == 400
    assert response.payload["code"] == "family.siblings[1].age"


# --- Delete element ---


async def test_delete_model_field_element(families, family):
    response = await model_resources.delete_model_field_element(
        sibling_context(family.id, "s1"),
        families.search,
        SIBLINGS,
        BY_ID,
        families.update,
        ResponseHandler(),
    )

    assert response.status_code == 204
    assert [sibling.id for sibling in families.stored(family.id).siblings] == ["s2"]

    retrieved = await model_resources.retrieve_model_field_element(
        sibling_context(family.id, "s1"),
        families.search,
        SIBLINGS,
        BY_ID,
        ResponseHandler(),
    )
    never_defined = await model_resources.retrieve_model_field_element(
        sibling_context(family.id, "s9"),
        families.search,
        SIBLINGS,
        BY_ID,
        ResponseHandler(),
    )

    assert retrieved.status_code == 404
    assert retrieved.payload["code"] == "family_siblings"
    assert never_defined.payload["code"] == retrieved.payload["code"]


async def test_delete_model_field_element_when_update_fails(families, family, handler):
    async def updater(model):
        raise RuntimeError("Store unavailable")

    response = await model_resources.delete_model_field_element(
        sibling_context(family.id, "s1"),
        families.search,
        SIBLINGS,
        BY_ID,
        updater,
        handler,
    )

    assert response.status_code == 400
    assert response.payload == {"code": "RuntimeError", "message": "Store unavailable"}
    assert len(families.stored(family.id).siblings) == 2
