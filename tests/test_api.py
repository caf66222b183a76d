"""
Integration tests for the local HTTP API, driven through the ASGI app with
the same lifespan the server runs.
"""

from __future__ import annotations

from conftest import INTERSTITIAL

EXCUSE = "Need to reply to a message from my landlord today"


async def _add_site(client, **fields):
    body = {"urlPattern": "example.com", "dailyLimitSeconds": 600, **fields}
    resp = await client.post("/sites", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["site"]


# ── Health ─────────────────────────────────────────────────────────────────

class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["detectorLoaded"] is True
        assert data["tracking"] is False


# ── Events ─────────────────────────────────────────────────────────────────

class TestEvents:
    async def test_accepts_known_event(self, client):
        resp = await client.post("/events", json={"type": "ALARM", "data": {"name": "dailyResetAlarm"}})
        assert resp.status_code == 202
        assert resp.json() == {"status": "accepted"}

    async def test_rejects_unknown_event(self, client):
        resp = await client.post("/events", json={"type": "NOT_AN_EVENT", "data": {}})
        assert resp.status_code == 422

    async def test_batch_skips_malformed(self, client):
        resp = await client.post("/events/batch", json=[
            {"type": "TAB_REMOVED", "data": {"tabId": 1}},
            {"type": "TAB_REMOVED", "data": {}},
        ])
        assert resp.status_code == 202
        assert resp.json() == {"accepted": 1, "total": 2}

    async def test_limit_reached_while_browsing_redirects(self, client, clock):
        await _add_site(client, dailyLimitSeconds=60)
        await client.put("/host/tabs", json={
            "tabs": [{"id": 5, "url": "https://example.com/feed", "windowId": 1, "active": True}],
            "focusedWindowId": 1,
        })
        await client.get("/host/commands")

        await client.post("/events", json={"type": "TAB_ACTIVATED", "data": {"tabId": 5, "windowId": 1}})
        state = (await client.get("/state")).json()
        assert state["isTracking"] is True
        assert state["tabId"] == 5
        assert state["timerRunning"] is True

        clock.advance(61)
        await client.post("/events", json={"type": "ALARM", "data": {"name": "usageTimer"}})

        commands = (await client.get("/host/commands")).json()["commands"]
        redirects = [c for c in commands if c["kind"] == "redirect"]
        assert len(redirects) == 1
        assert redirects[0]["payload"]["url"].startswith(INTERSTITIAL)
        assert (await client.get("/state")).json()["isTracking"] is False


# ── Sites ──────────────────────────────────────────────────────────────────

class TestSites:
    async def test_add_normalizes_pattern(self, client):
        site = await _add_site(client, urlPattern="https://www.Example.com/feed")
        assert site["urlPattern"] == "example.com"
        assert site["isEnabled"] is True

        listed = (await client.get("/sites")).json()
        assert [s["id"] for s in listed] == [site["id"]]

    async def test_add_requires_a_limit(self, client):
        resp = await client.post("/sites", json={"urlPattern": "example.com"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["type"] == "VALIDATION_ERROR"

    async def test_add_rejects_restricted_protocol(self, client):
        resp = await client.post("/sites", json={"urlPattern": "javascript:alert(1)", "dailyLimitSeconds": 60})
        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "urlPattern"

    async def test_update_and_delete(self, client):
        site = await _add_site(client)
        resp = await client.patch(f"/sites/{site['id']}", json={"isEnabled": False})
        assert resp.status_code == 200
        assert resp.json()["site"]["isEnabled"] is False
        assert resp.json()["reevaluation"]["event"] == "siteUpdated"

        resp = await client.delete(f"/sites/{site['id']}")
        assert resp.status_code == 200
        assert (await client.get("/sites")).json() == []

    async def test_unknown_site_is_404(self, client):
        resp = await client.patch("/sites/missing", json={"isEnabled": False})
        assert resp.status_code == 404
        assert resp.json()["detail"]["type"] == "NOT_FOUND"

    async def test_new_limit_blocks_open_tab(self, client):
        await client.put("/host/tabs", json={
            "tabs": [{"id": 9, "url": "https://example.com", "windowId": 1, "active": False}],
            "focusedWindowId": 1,
        })
        site = await _add_site(client)
        await client.patch(f"/sites/{site['id']}", json={"dailyOpenLimit": 1})
        await client.post("/events", json={
            "type": "BEFORE_NAVIGATE", "data": {"tabId": 9, "url": "https://example.com", "frameId": 0},
        })
        # the navigation itself was allowed; the activation counts the first open
        await client.post("/events", json={"type": "TAB_ACTIVATED", "data": {"tabId": 9, "windowId": 1}})

        resp = await client.patch(f"/sites/{site['id']}", json={"dailyLimitSeconds": 60})
        assert resp.json()["reevaluation"]["blocked"] == [9]


# ── Groups ─────────────────────────────────────────────────────────────────

class TestGroups:
    async def test_group_lifecycle(self, client):
        resp = await client.post("/groups", json={"name": "Social", "dailyLimitSeconds": 1800})
        assert resp.status_code == 201
        group = resp.json()["group"]

        site = await _add_site(client, urlPattern="reddit.com", groupId=group["id"])
        other = await _add_site(client, urlPattern="twitter.com")

        resp = await client.post(f"/groups/{group['id']}/sites/{other['id']}")
        assert resp.status_code == 200
        assert sorted(resp.json()["group"]["siteIds"]) == sorted([site["id"], other["id"]])

        resp = await client.delete(f"/groups/{group['id']}/sites/{other['id']}")
        assert resp.json()["group"]["siteIds"] == [site["id"]]

        resp = await client.delete(f"/groups/{group['id']}")
        assert resp.status_code == 200
        sites = {s["id"]: s for s in (await client.get("/sites")).json()}
        assert sites[site["id"]]["groupId"] is None

    async def test_group_needs_a_name(self, client):
        resp = await client.post("/groups", json={"name": " ", "dailyLimitSeconds": 60})
        assert resp.status_code == 422

    async def test_site_in_unknown_group(self, client):
        resp = await client.post("/sites", json={"urlPattern": "a.org", "groupId": "missing"})
        assert resp.status_code == 404


# ── Extensions ─────────────────────────────────────────────────────────────

class TestExtensions:
    async def test_grant_and_list(self, client):
        site = await _add_site(client)
        resp = await client.post("/extensions", json={
            "siteId": site["id"], "extendedMinutes": 15, "excuse": EXCUSE,
        })
        assert resp.status_code == 201
        assert resp.json()["appliedCount"] == 1
        assert resp.json()["usageAtExtensionTime"] == {"timeSpentSeconds": 0, "opens": 0}

        listed = (await client.get("/extensions")).json()
        assert listed[site["id"]]["extendedMinutes"] == 15

        commands = (await client.get("/host/commands")).json()["commands"]
        events = [c["payload"]["event"] for c in commands if c["kind"] == "broadcast"]
        assert events[-1] == "limitExtended"

    async def test_short_excuse_is_rejected(self, client):
        site = await _add_site(client)
        resp = await client.post("/extensions", json={
            "siteId": site["id"], "extendedMinutes": 15, "excuse": "please",
        })
        assert resp.status_code == 422
        assert resp.json()["detail"]["field"] == "excuse"

    async def test_unknown_site(self, client):
        resp = await client.post("/extensions", json={
            "siteId": "missing", "extendedOpens": 2, "excuse": EXCUSE,
        })
        assert resp.status_code == 404


# ── Notes & preferences ────────────────────────────────────────────────────

class TestNotesApi:
    async def test_notes_crud(self, client):
        assert (await client.get("/notes/random")).status_code == 404

        resp = await client.post("/notes", json={"text": "Drink some water"})
        assert resp.status_code == 201
        note = resp.json()

        assert (await client.get("/notes/random")).json()["id"] == note["id"]
        resp = await client.patch(f"/notes/{note['id']}", json={"text": "Stretch"})
        assert resp.json()["text"] == "Stretch"

        assert (await client.delete(f"/notes/{note['id']}")).status_code == 200
        assert (await client.get("/notes")).json() == []
        assert (await client.delete(f"/notes/{note['id']}")).status_code == 404


class TestPreferencesApi:
    async def test_read_and_update(self, client):
        data = (await client.get("/preferences")).json()
        assert data["preferences"] == data["defaults"]

        resp = await client.put("/preferences", json={"showActivitySuggestions": False})
        assert resp.json()["preferences"]["showActivitySuggestions"] is False
        assert resp.json()["preferences"]["showRandomMessage"] is True


# ── State ──────────────────────────────────────────────────────────────────

class TestState:
    async def test_idle_state(self, client):
        data = (await client.get("/state")).json()
        assert data["isTracking"] is False
        assert data["today"] == "2024-01-02"

    async def test_page_info_needs_active_tab(self, client):
        assert (await client.get("/state/page")).status_code == 404

    async def test_page_and_badge_for_url(self, client):
        await _add_site(client, dailyOpenLimit=4)
        page = (await client.get("/state/page", params={"url": "https://example.com/x"})).json()
        assert page["isDistractingSite"] is True
        assert page["siteInfo"]["remainingOpens"] == 4

        badge = (await client.get("/state/badge", params={"url": "https://example.com"})).json()
        assert badge == {
            "showBadge": True,
            "badgeText": "10m/4",
            "limitInfo": badge["limitInfo"],
        }

    async def test_commands_limit(self, client):
        for text in ("one", "two", "three"):
            await client.post("/notes", json={"text": text})
        data = (await client.get("/host/commands", params={"limit": 2})).json()
        assert len(data["commands"]) == 2
        assert data["pending"] == 1
