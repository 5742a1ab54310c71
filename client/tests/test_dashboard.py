from __future__ import annotations

import asyncio

import pytest

from listings_client.core.entities import ListingStatus
from listings_client.ui.dashboard import ListingDashboard

DRAFT_SCHOLARSHIP = {
    "name": "Merit Award",
    "description": "For top students",
    "amount": 1500,
    "deadline": "2026-12-01",
}


def _actions(tab) -> list[list[str]]:
    return [[button.action for button in row.actions] for row in tab.rows]


def test_publish_moves_row_between_open_tabs(connect, session_for) -> None:
    async def run():
        async with connect(session_for("university-token")) as runtime:
            resource = runtime.listings["scholarships"]
            created = await resource.create(dict(DRAFT_SCHOLARSHIP))
            dashboard = ListingDashboard(resource, runtime.session)

            draft_tab = await dashboard.open_tab(ListingStatus.DRAFT)
            live_tab = await dashboard.open_tab("Live")
            draft_before = [row.record_id for row in draft_tab.rows]
            draft_actions = _actions(draft_tab)
            renders_before = (draft_tab.render_count, live_tab.render_count)

            result = await dashboard.dispatch("publish", created.data["id"])
            assert result.ok

            draft_after = [row.record_id for row in dashboard.tabs[ListingStatus.DRAFT].rows]
            live_after = [row.record_id for row in dashboard.tabs[ListingStatus.LIVE].rows]
            live_actions = _actions(dashboard.tabs[ListingStatus.LIVE])
            renders_after = (draft_tab.render_count, live_tab.render_count)
            dashboard.close()
            return created.data["id"], draft_before, draft_actions, draft_after, live_after, live_actions, renders_before, renders_after

    record_id, draft_before, draft_actions, draft_after, live_after, live_actions, before, after = asyncio.run(run())
    assert draft_before == [record_id]
    assert draft_actions == [["edit", "delete", "publish"]]
    assert draft_after == []
    assert live_after == [record_id]
    assert live_actions == [["archive", "edit", "view_applications"]]
    assert before == (1, 1)
    assert after == (2, 2)


def test_research_news_tabs_skip_applications(connect, session_for) -> None:
    async def run():
        async with connect(session_for("university-token")) as runtime:
            resource = runtime.listings["research-news"]
            created = await resource.create(
                {"title": "Qubits", "abstract": "Short", "article": "Long", "category": "quantum", "status": "Live"}
            )
            dashboard = ListingDashboard(resource, runtime.session)
            tab = await dashboard.open_tab("published")
            dashboard.close()
            return created.data["id"], tab

    record_id, tab = asyncio.run(run())
    assert [row.record_id for row in tab.rows] == [record_id]
    assert tab.rows[0].title == "Qubits"
    assert _actions(tab) == [["archive", "edit"]]


def test_staff_without_kind_permission_sees_no_actions(connect, session_for) -> None:
    async def run():
        async with connect(session_for("staff-token")) as staff:
            staff_dashboard = ListingDashboard(staff.listings["scholarships"], staff.session)
            opportunity_dashboard = ListingDashboard(staff.listings["opportunities"], staff.session)
            return staff_dashboard.can_manage, opportunity_dashboard.can_manage

    scholarships, opportunities = asyncio.run(run())
    assert scholarships is True
    assert opportunities is False


def test_student_cannot_dispatch(connect, session_for) -> None:
    async def run():
        async with connect(session_for("university-token")) as owner:
            created = await owner.listings["jobs"].create(
                {
                    "title": "Tutor",
                    "description": "Tutor first years",
                    "location": "Remote",
                    "employment_type": "Part-time",
                    "experience_level": "Entry Level",
                    "mode_of_work": "Online",
                    "status": "Live",
                }
            )

        async with connect(session_for("student-token")) as student:
            dashboard = ListingDashboard(student.listings["jobs"], student.session)
            tab = await dashboard.open_tab("Live")
            with pytest.raises(PermissionError):
                await dashboard.dispatch("archive", created.data["id"])
            dashboard.close()
            return created.data["id"], tab

    record_id, tab = asyncio.run(run())
    assert [row.record_id for row in tab.rows] == [record_id]
    assert _actions(tab) == [[]]


def test_unknown_action_is_rejected(connect, session_for) -> None:
    async def run():
        async with connect(session_for("university-token")) as runtime:
            dashboard = ListingDashboard(runtime.listings["jobs"], runtime.session)
            with pytest.raises(ValueError):
                await dashboard.dispatch("promote", "job-1")
            result = await dashboard.dispatch("edit", "job-1")
            return result

    result = asyncio.run(run())
    assert result.field_errors == {"payload": "Nothing to update"}
