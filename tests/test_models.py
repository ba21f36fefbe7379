"""Tests for trackerkit.integrations.models module."""

import json
from datetime import date, datetime, timezone

import pytest

from trackerkit.integrations.document import document, paragraph, text_node
from trackerkit.integrations.models import (
    Issue,
    IssueSummary,
    Link,
    LinkDirection,
    LinkType,
    Project,
    Sprint,
    Status,
    StatusCategory,
    User,
    entity_to_dict,
)

BLOCKS = LinkType(id="1", name="Blocks", forward_label="blocks", backward_label="is blocked by")


@pytest.fixture
def issue():
    return Issue(
        id="10001",
        key="PROJ-1",
        summary="Fix login redirect",
        description=document(paragraph(text_node("Steps"))),
        status=Status(id="1", name="To Do", category=StatusCategory.NEW),
        project=Project(id="10000", key="PROJ", name="Project"),
        assignee=User(id="acc-1", display_name="Jane Doe"),
        labels=frozenset({"b", "a"}),
        created=datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        due_date=date(2024, 2, 1),
        links=(
            Link(
                id="5",
                type=BLOCKS,
                direction=LinkDirection.BACKWARD,
                linked_issue=IssueSummary(id="2", key="PROJ-2"),
            ),
        ),
    )


class TestIssue:
    def test_frozen(self, issue):
        with pytest.raises(AttributeError):
            issue.summary = "changed"

    def test_to_summary(self, issue):
        summary = issue.to_summary()
        assert summary.key == "PROJ-1"
        assert summary.status.category == StatusCategory.NEW

    def test_to_dict_is_json_safe(self, issue):
        data = issue.to_dict()

        json.dumps(data)
        assert data["status"]["category"] == "new"
        assert data["labels"] == ["a", "b"]
        assert data["created"] == "2024-01-15T10:30:00+00:00"
        assert data["due_date"] == "2024-02-01"
        assert data["description"]["type"] == "doc"
        assert data["links"][0]["direction"] == "backward"
        assert data["comments"] == []


class TestLinkLabel:
    def test_forward(self):
        link = Link(
            id="1",
            type=BLOCKS,
            direction=LinkDirection.FORWARD,
            linked_issue=IssueSummary(id="2", key="PROJ-2"),
        )
        assert link.label == "blocks"

    def test_backward(self, issue):
        assert issue.links[0].label == "is blocked by"


class TestSprint:
    @pytest.mark.parametrize("state,active", [("active", True), ("ACTIVE", True), ("closed", False)])
    def test_is_active(self, state, active):
        assert Sprint(id=1, name="S1", state=state).is_active is active


def test_entity_to_dict_rejects_non_entities():
    with pytest.raises(TypeError):
        entity_to_dict("PROJ-1")


def test_entity_to_dict_user():
    assert entity_to_dict(User(id="acc-1", display_name="Jane")) == {
        "id": "acc-1",
        "display_name": "Jane",
        "email": None,
        "avatar_url": None,
        "active": True,
    }
