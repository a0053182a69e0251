import pytest
from elasticsearch import ConnectionError

from reqhub import schemas
from reqhub import search as search_index
from reqhub.errors import ValidationError
from reqhub.services import search
from conftest import make_user, new_criteria, new_epic, new_requirement, new_story


@pytest.fixture
def corpus(db, functional_type):
    user = make_user(db)
    other = make_user(db)
    checkout = new_epic(db, user, title="Checkout", description="Card payments", priority=1)
    billing = new_epic(db, user, title="Billing checkout flow", priority=3)
    reports = epics_by(db, other, "Reports", "Monthly checkout numbers", 4)
    story = new_story(db, user, checkout, title="Saved cards", priority=2)
    criteria = new_criteria(db, user, story, description="Checkout shows the saved card list")
    requirement = new_requirement(db, user, story, functional_type, title="Card vault", priority=2)
    return {
        "user": user,
        "other": other,
        "checkout": checkout,
        "billing": billing,
        "reports": reports,
        "story": story,
        "criteria": criteria,
        "requirement": requirement,
    }


def epics_by(db, user, title, description, priority):
    return new_epic(db, user, title=title, description=description, priority=priority)


def _search(db, **kwargs):
    return search.search(db, schemas.SearchOptions(**kwargs))


def test_reference_id_query_short_circuits(db, corpus):
    response = _search(db, query="us-001")
    assert response.total_count == 1
    hit = response.results[0]
    assert hit.id == corpus["story"].id
    assert hit.relevance == 1.0

    assert _search(db, query="US-001", entity_types=["epic"]).total_count == 0
    assert _search(db, query="EP-999").total_count == 0


def test_text_search_scores_title_before_description(db, corpus):
    response = _search(db, query="checkout")
    by_id = {r.id: r for r in response.results}
    assert by_id[corpus["checkout"].id].relevance == search.EXACT_TITLE_SCORE
    assert by_id[corpus["billing"].id].relevance == search.TITLE_SCORE
    assert by_id[corpus["reports"].id].relevance == search.DESCRIPTION_SCORE
    assert corpus["criteria"].id in by_id
    assert response.results[0].id == corpus["checkout"].id
    assert [r.relevance for r in response.results] == sorted(
        (r.relevance for r in response.results), reverse=True
    )


def test_filters(db, corpus):
    response = _search(db, query="checkout", creator_id=corpus["other"].id)
    assert [r.id for r in response.results] == [corpus["reports"].id]

    response = _search(db, query="checkout", priority=1)
    assert [r.id for r in response.results] == [corpus["checkout"].id]

    response = _search(db, query="card", entity_types=["requirement"])
    assert [r.type for r in response.results] == ["requirement"]

    response = _search(db, status="Backlog", entity_types=["epic", "acceptance_criteria"])
    assert {r.type for r in response.results} == {"epic"}
    assert response.total_count == 3


def test_sort_and_paging(db, corpus):
    response = _search(db, entity_types=["epic"], sort_by="priority", sort_order="asc")
    assert [r.priority for r in response.results] == [1, 3, 4]

    response = _search(db, entity_types=["epic"], sort_by="title", sort_order="asc", limit=1, offset=1)
    assert response.total_count == 3
    assert [r.title for r in response.results] == ["Checkout"]

    response = _search(db, sort_by="priority", sort_order="asc")
    assert response.results[-1].type == "acceptance_criteria"


@pytest.mark.parametrize(
    "options",
    [
        {"limit": 101},
        {"limit": -1},
        {"offset": -1},
        {"sort_by": "relevance"},
        {"sort_order": "up"},
        {"entity_types": ["comment"]},
        {"priority": 9},
    ],
)
def test_invalid_options(db, options):
    with pytest.raises(ValidationError):
        _search(db, **options)


def test_zero_limit_means_default(db, corpus):
    assert _search(db, limit=0).limit == 50


def test_suggestions(db, corpus):
    found = search.suggestions(db, "chec")
    assert [(s.type, s.reference_id) for s in found] == [
        ("epic", "EP-001"),
        ("acceptance_criteria", "AC-001"),
    ]
    assert [s.reference_id for s in search.suggestions(db, "ep-00", limit=2)] == ["EP-001", "EP-002"]
    assert search.suggestions(db, "  ") == []
    with pytest.raises(ValidationError):
        search.suggestions(db, "c", limit=51)


def test_search_api(client, db, corpus, editor_headers):
    resp = client.get(
        "/api/search",
        params={"q": "checkout", "entity_types": ["epic"], "sort_by": "priority", "sort_order": "asc"},
        headers=editor_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["query"] == "checkout"
    assert [r["reference_id"] for r in body["results"]] == ["EP-001", "EP-002", "EP-003"]

    resp = client.get("/api/search", params={"sort_by": "nope"}, headers=editor_headers)
    assert resp.status_code == 400

    resp = client.get("/api/search/suggestions", params={"q": "card"}, headers=editor_headers)
    assert [s["reference_id"] for s in resp.json()] == ["REQ-001"]


class _UnreachableIndex:
    def search(self, **kwargs):
        raise ConnectionError("connection refused")


def test_unreachable_index_falls_back_to_database(db, corpus, monkeypatch):
    monkeypatch.setattr(search_index, "_es_client", _UnreachableIndex())
    assert search_index.search_ids("checkout", ["epic"]) is None
    response = _search(db, query="checkout", entity_types=["epic"])
    assert response.results[0].id == corpus["checkout"].id
    assert response.total_count == 3
