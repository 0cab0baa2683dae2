"""Tests for the /api/v1 JSON endpoints."""

from unittest.mock import patch

import pytest

from conftest import AJAX, USER_EMAIL, USER_ID, rect_design, placement

SUPABASE = "gardenstudio.services.supabase_client"
DESIGN_ID = "6f1c2a9e-3b4d-4e5f-8a7b-9c0d1e2f3a4b"


class TestCatalog:
    def test_list_plants(self, client):
        body = client.get("/api/v1/plants?category=groundcover").get_json()
        assert body["success"]
        assert body["count"] == len(body["plants"]) > 0
        assert all(p["category"] == "groundcover" for p in body["plants"])

    def test_search_alias(self, client):
        names = [p["name"] for p in client.get("/api/v1/plants?q=lantana").get_json()["plants"]]
        assert names == ["Lantana 'Miss Huff'", "Lantana"]

    def test_get_plant(self, client):
        body = client.get("/api/v1/plants/lantana").get_json()
        assert body["plant"]["name"] == "Lantana"
        assert set(body["sizes"]) == {"1gal", "3gal"}
        assert body["spread_inches"] == 42
        assert body["height_inches"] == 48
        assert body["form"] == "spreading"

    def test_unknown_plant(self, client):
        response = client.get("/api/v1/plants/triffid")
        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_pricing(self, client):
        plans = client.get("/api/v1/pricing").get_json()["plans"]
        assert [p["id"] for p in plans] == ["free", "basic", "pro", "max"]
        assert plans[2]["highlighted"]
        assert plans[1]["limits"]["max_plants"] == 45


class TestBundleRoutes:
    def test_guest_sees_locked_bundles(self, client):
        body = client.get("/api/v1/bundles").get_json()
        assert body["count"] == 29
        assert all(b["locked"] for b in body["bundles"])

    def test_bundle_detail(self, client):
        body = client.get("/api/v1/bundles/main-street-classic?area=100").get_json()
        bundle = body["bundle"]
        assert bundle["ratios"]["valid"]
        assert bundle["recommended_quantities"]["total"] == 200
        assert bundle["fill_estimate"]["carpet"] == 294
        assert "density_plan" not in bundle

    def test_max_gets_density_plan(self, client, sign_in):
        headers = sign_in("max")
        bundle = client.get("/api/v1/bundles/main-street-classic?density=1.0", headers=headers).get_json()["bundle"]
        assert {i["plant_age"] for i in bundle["density_plan"]} == {"mature"}

    @pytest.mark.parametrize("query", ["area=0", "area=lots", "density=9"])
    def test_bundle_detail_bad_query(self, client, query):
        assert client.get(f"/api/v1/bundles/main-street-classic?{query}").status_code == 400

    def test_unknown_bundle(self, client):
        assert client.get("/api/v1/bundles/nope").status_code == 404

    def test_apply_requires_paid_plan(self, client):
        response = client.post("/api/v1/bundles/main-street-classic/apply",
                               json={"design": rect_design(30, 15)}, headers=AJAX)
        assert response.status_code == 402
        assert response.get_json()["upgrade"]["title"] == "Bundles Locked"

    def test_apply_for_max(self, client, sign_in):
        headers = sign_in("max")
        response = client.post("/api/v1/bundles/main-street-classic/apply",
                               json={"design": rect_design(30, 15), "scale": 0.5}, headers=headers)
        body = response.get_json()
        assert response.status_code == 200
        assert body["added"]
        assert body["design"]["bundles_applied"] == 1

    def test_apply_swap_limit(self, client, sign_in):
        headers = sign_in("basic")
        response = client.post("/api/v1/bundles/main-street-classic/apply",
                               json={"design": rect_design(30, 15, bundles_applied=1)}, headers=headers)
        assert response.status_code == 402
        assert response.get_json()["upgrade"]["title"] == "No Bundle Swaps Left"

    def test_apply_bad_scale(self, client, sign_in):
        headers = sign_in("max")
        response = client.post("/api/v1/bundles/main-street-classic/apply",
                               json={"design": rect_design(), "scale": 50}, headers=headers)
        assert response.status_code == 400


class TestCanvas:
    def test_mutations_need_ajax_header(self, client):
        response = client.post("/api/v1/designs/place", json={"design": rect_design()})
        assert response.status_code == 403

    def test_place(self, client):
        response = client.post("/api/v1/designs/place", headers=AJAX, json={
            "design": rect_design(), "plant_id": "lantana", "x": 30, "y": 30, "size": "1gal",
        })
        body = response.get_json()
        assert response.status_code == 200
        assert body["placement"]["plant_id"] == "lantana"
        assert body["remaining_plants"] == 4

    def test_place_outside_bed(self, client):
        response = client.post("/api/v1/designs/place", headers=AJAX, json={
            "design": rect_design(), "plant_id": "lantana", "x": 500, "y": 30,
        })
        assert response.status_code == 400
        assert response.get_json()["error"] == "Plants must be placed inside the bed."

    def test_place_over_limit(self, client):
        design = rect_design(placements=[placement("liriope", 10 * i, 10) for i in range(5)])
        response = client.post("/api/v1/designs/place", headers=AJAX, json={
            "design": design, "plant_id": "lantana", "x": 30, "y": 30,
        })
        assert response.status_code == 402
        assert response.get_json()["error"] == "Plan limit reached (5 plants max). Upgrade for more plants."

    def test_place_needs_numbers(self, client):
        response = client.post("/api/v1/designs/place", headers=AJAX, json={
            "design": rect_design(), "plant_id": "lantana", "x": "left", "y": 30,
        })
        assert response.status_code == 400

    def test_invalid_body(self, client):
        response = client.post("/api/v1/designs/analyze", headers=AJAX, data="nope", content_type="text/plain")
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid request body"

    def test_move(self, client):
        design = rect_design(placements=[placement("lantana", 30, 30)])
        body = client.post("/api/v1/designs/move", headers=AJAX, json={
            "design": design, "placement_id": "p-lantana-30-30", "x": 999, "y": 40,
        }).get_json()
        assert (body["placement"]["x"], body["placement"]["y"]) == (120, 40)

    def test_move_unknown_placement(self, client):
        response = client.post("/api/v1/designs/move", headers=AJAX, json={
            "design": rect_design(), "placement_id": "ghost", "x": 1, "y": 1,
        })
        assert response.status_code == 404

    def test_edit_needs_placement_id(self, client):
        response = client.post("/api/v1/designs/remove", headers=AJAX, json={"design": rect_design()})
        assert response.status_code == 400

    def test_resize(self, client):
        design = rect_design(placements=[placement("lantana", 30, 30)])
        ok = client.post("/api/v1/designs/resize", headers=AJAX, json={
            "design": design, "placement_id": "p-lantana-30-30", "size": "3gal",
        })
        assert ok.get_json()["placement"]["size"] == "3gal"
        bad = client.post("/api/v1/designs/resize", headers=AJAX, json={
            "design": design, "placement_id": "p-lantana-30-30", "size": "15gal",
        })
        assert bad.status_code == 400

    def test_remove(self, client):
        design = rect_design(placements=[placement("lantana", 30, 30)])
        body = client.post("/api/v1/designs/remove", headers=AJAX, json={
            "design": design, "placement_id": "p-lantana-30-30",
        }).get_json()
        assert body["design"]["placements"] == []
        assert body["remaining_plants"] == 5

    def test_analyze_guest(self, client):
        design = rect_design(placements=[placement("lantana", 30, 30)])
        analysis = client.post("/api/v1/designs/analyze", headers=AJAX, json={"design": design}).get_json()["analysis"]
        assert analysis["plant_count"] == 1
        assert "show_ready" not in analysis

    def test_analyze_max(self, client, sign_in):
        headers = sign_in("max")
        design = rect_design(placements=[placement("lantana", 30, 30)])
        analysis = client.post("/api/v1/designs/analyze", headers=headers, json={"design": design}).get_json()["analysis"]
        assert "how_tos" in analysis

    def test_bed_path(self, client):
        points = [{"x": i * 10, "y": (i % 3) * 10} for i in range(12)]
        body = client.post("/api/v1/beds/path", headers=AJAX, json={"points": points}).get_json()
        assert len(body["path"]) == 12 * 8
        assert body["svg"].startswith("M ")
        assert body["area_sq_ft"] > 0

    @pytest.mark.parametrize("points", [None, [{"x": 1}], [{"x": 1, "y": 1}] * 3])
    def test_bed_path_rejected(self, client, points):
        assert client.post("/api/v1/beds/path", headers=AJAX, json={"points": points}).status_code == 400


class TestExport:
    def test_free_cannot_export(self, client):
        response = client.post("/api/v1/designs/export", headers=AJAX, json={"design": rect_design()})
        assert response.status_code == 402
        assert response.get_json()["upgrade"]["title"] == "Export Design"

    def test_basic_export_records_usage(self, client, sign_in):
        headers = sign_in("basic")
        body = client.post("/api/v1/designs/export", headers=headers, json={"design": rect_design()}).get_json()
        assert body["filename"] == "front-yard-blueprint.json"
        assert body["blueprint"]["watermark"] is True
        sign_in.increment.assert_called_once_with(USER_ID, "exports_this_month")

    def test_basic_export_limit(self, client, sign_in):
        headers = sign_in("basic", exports_this_month=1)
        assert client.post("/api/v1/designs/export", headers=headers, json={"design": rect_design()}).status_code == 402

    def test_export_over_plant_limit(self, client, sign_in):
        headers = sign_in("basic")
        crowded = rect_design(40, 20, placements=[placement("liriope", 10 + i * 5, 10) for i in range(46)])
        response = client.post("/api/v1/designs/export", headers=headers, json={"design": crowded})
        assert response.status_code == 402
        assert "45 plants max" in response.get_json()["error"]
        sign_in.increment.assert_not_called()

    def test_export_with_too_many_bundle_drops(self, client, sign_in):
        headers = sign_in("basic")
        response = client.post("/api/v1/designs/export", headers=headers,
                               json={"design": rect_design(bundles_applied=3)})
        assert response.status_code == 402


class TestAccount:
    def test_guest_entitlements(self, client):
        ent = client.get("/api/v1/me/entitlements").get_json()["entitlements"]
        assert ent["plan"] == "free"

    def test_signed_in_entitlements(self, client, sign_in):
        headers = sign_in("pro", vision_renders_this_month=4)
        ent = client.get("/api/v1/me/entitlements", headers=headers).get_json()["entitlements"]
        assert ent["plan"] == "pro"
        assert ent["remaining"]["vision_renders"] == 26

    def test_projects_need_sign_in(self, client):
        response = client.post("/api/v1/projects", headers=AJAX)
        assert response.status_code == 401

    def test_project_recorded(self, client, sign_in):
        headers = sign_in("basic")
        assert client.post("/api/v1/projects", headers=headers).get_json() == {"success": True, "projects_this_month": 1}

    def test_project_limit(self, client, sign_in):
        headers = sign_in("basic", projects_this_month=3)
        response = client.post("/api/v1/projects", headers=headers)
        assert response.status_code == 402

    @patch(f"{SUPABASE}.verify_session", return_value={"id": USER_ID, "email": USER_EMAIL})
    def test_cookie_session(self, verify_session, app, client):
        app.config["SESSION_COOKIE_SECURE"] = False
        with patch(f"{SUPABASE}.get_subscription", return_value=None), \
                patch(f"{SUPABASE}.get_user_profile", return_value=None):
            response = client.post("/api/v1/session", headers=AJAX,
                                   json={"access_token": "jwt", "refresh_token": "refresh"})
            assert response.get_json()["user"] == {"id": USER_ID, "email": USER_EMAIL}
            with client.session_transaction() as sess:
                assert sess["access_token"] == "jwt"

            # Later requests authenticate from the cookie alone
            assert client.post("/api/v1/projects", headers=AJAX).status_code == 200

            client.delete("/api/v1/session", headers=AJAX)
            with client.session_transaction() as sess:
                assert "access_token" not in sess
        verify_session.assert_called_with("jwt", "refresh")

    @patch(f"{SUPABASE}.verify_session", return_value=None)
    def test_bad_session(self, _verify, client):
        response = client.post("/api/v1/session", headers=AJAX, json={"access_token": "expired"})
        assert response.status_code == 401

    def test_session_needs_token(self, client):
        assert client.post("/api/v1/session", headers=AJAX, json={}).status_code == 400


class TestSavedDesigns:
    def test_basic_cannot_save(self, client, sign_in):
        headers = sign_in("basic")
        response = client.post("/api/v1/designs", headers=headers, json={"design": rect_design()})
        assert response.status_code == 402

    def test_save_new(self, client, sign_in):
        headers = sign_in("pro")
        with patch(f"{SUPABASE}.save_design", return_value=({"id": DESIGN_ID}, None)) as save:
            response = client.post("/api/v1/designs", headers=headers, json={"design": rect_design()})
        assert response.status_code == 201
        user_id, design, design_id = save.call_args.args
        assert (user_id, design["name"], design_id) == (USER_ID, "Front Yard", None)

    def test_overwrite(self, client, sign_in):
        headers = sign_in("pro")
        with patch(f"{SUPABASE}.get_design", return_value={"id": DESIGN_ID, "data": {"bundles_applied": 1}}), \
                patch(f"{SUPABASE}.save_design", return_value=({"id": DESIGN_ID}, None)) as save:
            response = client.post("/api/v1/designs", headers=headers, json={"id": DESIGN_ID, "design": rect_design()})
        assert response.status_code == 200
        assert save.call_args.args[1]["bundles_applied"] == 1

    def test_overwrite_keeps_stored_bundle_count(self, client, sign_in):
        headers = sign_in("pro")
        with patch(f"{SUPABASE}.get_design", return_value={"id": DESIGN_ID, "data": {"bundles_applied": 7}}), \
                patch(f"{SUPABASE}.save_design") as save:
            response = client.post("/api/v1/designs", headers=headers,
                                   json={"id": DESIGN_ID, "design": rect_design(bundles_applied=0)})
        assert response.status_code == 402
        save.assert_not_called()

    def test_save_over_plant_limit(self, client, sign_in):
        headers = sign_in("pro")
        crowded = rect_design(60, 30, placements=[placement("liriope", 10 + i * 5, 10) for i in range(101)])
        with patch(f"{SUPABASE}.save_design") as save:
            response = client.post("/api/v1/designs", headers=headers, json={"design": crowded})
        assert response.status_code == 402
        save.assert_not_called()

    def test_overwrite_someone_elses_design(self, client, sign_in):
        headers = sign_in("max")
        with patch(f"{SUPABASE}.get_design", return_value=None), \
                patch(f"{SUPABASE}.save_design") as save:
            response = client.post("/api/v1/designs", headers=headers, json={"id": DESIGN_ID, "design": rect_design()})
        assert response.status_code == 404
        save.assert_not_called()

    def test_save_bad_id(self, client, sign_in):
        headers = sign_in("pro")
        response = client.post("/api/v1/designs", headers=headers, json={"id": "1; drop", "design": rect_design()})
        assert response.status_code == 400

    def test_save_failure_is_generic(self, client, sign_in):
        headers = sign_in("pro")
        with patch(f"{SUPABASE}.save_design", return_value=(None, "relation designs does not exist")):
            response = client.post("/api/v1/designs", headers=headers, json={"design": rect_design()})
        assert response.status_code == 500
        assert "relation" not in response.get_json()["error"]

    def test_list(self, client, sign_in):
        headers = sign_in("pro")
        with patch(f"{SUPABASE}.list_designs", return_value=([{"id": DESIGN_ID}], None)):
            body = client.get("/api/v1/designs", headers=headers).get_json()
        assert body["designs"] == [{"id": DESIGN_ID}]

    def test_get_and_delete(self, client, sign_in):
        headers = sign_in("pro")
        with patch(f"{SUPABASE}.get_design", return_value=None):
            assert client.get(f"/api/v1/designs/{DESIGN_ID}", headers=headers).status_code == 404
        with patch(f"{SUPABASE}.delete_design", return_value=True) as delete:
            assert client.delete(f"/api/v1/designs/{DESIGN_ID}", headers=headers).status_code == 200
        delete.assert_called_once_with(DESIGN_ID, USER_ID)

    def test_bad_design_id(self, client, sign_in):
        headers = sign_in("pro")
        assert client.get("/api/v1/designs/not-a-uuid", headers=headers).status_code == 400

    def test_list_needs_sign_in(self, client):
        assert client.get("/api/v1/designs").status_code == 401


class TestAdmin:
    def test_requires_admin(self, client, sign_in):
        headers = sign_in("pro")
        assert client.get("/api/v1/admin/bundles/validate", headers=headers).status_code == 403

    def test_report(self, client, sign_in):
        headers = sign_in("pro", is_admin=True)
        body = client.get("/api/v1/admin/bundles/validate", headers=headers).get_json()
        assert body["valid"]
        assert set(body["bundles"]) >= {"main-street-classic"}

    def test_admin_email(self, app, client, sign_in):
        app.config["ADMIN_EMAILS"] = USER_EMAIL
        headers = sign_in(None)
        assert client.get("/api/v1/admin/bundles/validate", headers=headers).status_code == 200
