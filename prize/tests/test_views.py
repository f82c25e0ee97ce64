import json
from unittest import mock

from django.db import DatabaseError
from django.test import Client, TestCase, override_settings

from prize.models import Allocation, Prize

from .helpers import create_prize


class DrawAPITests(TestCase):
    def setUp(self) -> None:
        self.client = Client()
        self.prize = create_prize("A", total=1)

    def post_draw(self, payload, **extra):
        return self.client.post(
            "/prize/draw/",
            data=json.dumps(payload),
            content_type="application/json",
            **extra,
        )

    def test_successful_draw_returns_created(self) -> None:
        response = self.post_draw({"requester_id": "E001", "requester_name": "Alice"})

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["prize"]["id"], "A")
        self.assertEqual(payload["prize"]["remaining"], 0)
        self.assertEqual(payload["prize"]["name"], {"zh": "獎品 A", "en": "Prize A"})
        self.assertEqual(payload["allocation"]["requester_id"], "E001")
        self.assertEqual(payload["allocation"]["prize_id"], "A")

    def test_second_draw_by_same_requester_conflicts(self) -> None:
        create_prize("B", total=5)
        first = self.post_draw({"requester_id": "E001", "requester_name": "Alice"}).json()

        response = self.post_draw({"requester_id": "E001", "requester_name": "Alice"})

        self.assertEqual(response.status_code, 409)
        payload = response.json()
        self.assertEqual(payload["error"], "already_participated")
        self.assertFalse(payload["retryable"])
        self.assertEqual(payload["allocation"]["id"], first["allocation"]["id"])
        self.assertEqual(payload["prize"]["id"], first["prize"]["id"])

    def test_exhausted_pool_returns_not_found(self) -> None:
        self.post_draw({"requester_id": "E001", "requester_name": "Alice"})

        response = self.post_draw({"requester_id": "E002", "requester_name": "Bob"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "no_stock_available")
        self.assertFalse(response.json()["retryable"])

    def test_lost_race_is_retryable(self) -> None:
        stale = Prize.objects.get(pk="A")
        Prize.objects.filter(pk="A").update(remaining=0)

        with mock.patch("prize.services.snapshot_available", return_value=[stale]):
            response = self.post_draw({"requester_id": "E001", "requester_name": "Alice"})

        self.assertEqual(response.status_code, 503)
        payload = response.json()
        self.assertEqual(payload["error"], "stock_exhausted")
        self.assertTrue(payload["retryable"])

    def test_validates_required_fields(self) -> None:
        response = self.post_draw({"requester_id": "E001"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "validation_error")

        response = self.client.post(
            "/prize/draw/", data="{not json", content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/prize/draw/", data="[1, 2]", content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)

    def test_accepts_form_encoded_body(self) -> None:
        response = self.client.post(
            "/prize/draw/", {"requester_id": "E001", "requester_name": "Alice"}
        )
        self.assertEqual(response.status_code, 201)

    def test_internal_error_is_reported(self) -> None:
        with mock.patch(
            "prize.services._record_allocation",
            side_effect=DatabaseError("disk full"),
        ), self.assertLogs("prize.services", level="ERROR"):
            response = self.post_draw({"requester_id": "E001", "requester_name": "Alice"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "internal_error")

    def test_records_forwarded_origin_address(self) -> None:
        self.post_draw(
            {"requester_id": "E001", "requester_name": "Alice"},
            HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1",
        )
        self.assertEqual(Allocation.objects.get().origin_address, "203.0.113.7")

    def test_strips_ipv4_mapped_prefix(self) -> None:
        self.post_draw(
            {"requester_id": "E001", "requester_name": "Alice"},
            REMOTE_ADDR="::ffff:192.168.1.20",
        )
        self.assertEqual(Allocation.objects.get().origin_address, "192.168.1.20")

    def test_draw_requires_post(self) -> None:
        response = self.client.get("/prize/draw/")
        self.assertEqual(response.status_code, 405)


class EligibilityAPITests(TestCase):
    def setUp(self) -> None:
        self.client = Client()
        create_prize("A", total=3)

    def test_reports_not_drawn(self) -> None:
        response = self.client.get("/prize/draw/check/", {"requester_id": "E001"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "has_drawn": False})

    def test_reports_existing_allocation(self) -> None:
        self.client.post(
            "/prize/draw/",
            data=json.dumps({"requester_id": "E001", "requester_name": "Alice"}),
            content_type="application/json",
        )

        response = self.client.get("/prize/draw/check/", {"requester_id": "E001"})

        payload = response.json()
        self.assertTrue(payload["has_drawn"])
        self.assertEqual(payload["allocation"]["requester_id"], "E001")
        self.assertEqual(payload["prize"]["id"], "A")

    def test_requires_requester_id(self) -> None:
        response = self.client.get("/prize/draw/check/")
        self.assertEqual(response.status_code, 400)


@override_settings(LOTTERY_ADMIN_TOKEN="secret")
class AllocationAdminAPITests(TestCase):
    def setUp(self) -> None:
        self.client = Client()
        self.prize = create_prize("A", total=3)
        for idx in range(2):
            self.client.post(
                "/prize/draw/",
                data=json.dumps({"requester_id": f"E00{idx}", "requester_name": f"P{idx}"}),
                content_type="application/json",
            )

    def test_lists_allocations_newest_first(self) -> None:
        response = self.client.get("/prize/allocations/")

        self.assertEqual(response.status_code, 200)
        allocations = response.json()["allocations"]
        self.assertEqual([a["requester_id"] for a in allocations], ["E001", "E000"])

    def test_delete_requires_token(self) -> None:
        allocation = Allocation.objects.get(requester_id="E000")

        response = self.client.delete(f"/prize/allocations/{allocation.pk}/")
        self.assertEqual(response.status_code, 403)

        response = self.client.delete(
            f"/prize/allocations/{allocation.pk}/", HTTP_X_ADMIN_TOKEN="wrong"
        )
        self.assertEqual(response.status_code, 403)
        self.assertTrue(Allocation.objects.filter(pk=allocation.pk).exists())

    def test_delete_restores_stock(self) -> None:
        allocation = Allocation.objects.get(requester_id="E000")

        response = self.client.delete(
            f"/prize/allocations/{allocation.pk}/", HTTP_X_ADMIN_TOKEN="secret"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["requester_id"], "E000")
        self.assertFalse(Allocation.objects.filter(pk=allocation.pk).exists())
        self.prize.refresh_from_db()
        self.assertEqual(self.prize.remaining, 2)

    def test_delete_unknown_allocation(self) -> None:
        response = self.client.delete(
            "/prize/allocations/999999/", HTTP_AUTHORIZATION="Bearer secret"
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "allocation_not_found")

    def test_reset_restores_everything(self) -> None:
        response = self.client.post("/prize/reset/", HTTP_AUTHORIZATION="Bearer secret")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["allocations_deleted"], 2)
        self.assertFalse(Allocation.objects.exists())
        self.prize.refresh_from_db()
        self.assertEqual(self.prize.remaining, 3)

    @override_settings(LOTTERY_ADMIN_TOKEN=None)
    def test_admin_routes_need_configured_token(self) -> None:
        response = self.client.post("/prize/reset/", HTTP_X_ADMIN_TOKEN="secret")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "not_configured")
        self.assertEqual(Allocation.objects.count(), 2)


class PrizeListAPITests(TestCase):
    def test_lists_prizes_by_id(self) -> None:
        create_prize("B", total=1)
        create_prize("A", total=2)

        response = Client().get("/prize/list/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([p["id"] for p in response.json()["prizes"]], ["A", "B"])

    def test_database_failure_returns_json_error(self) -> None:
        with mock.patch("prize.views.Prize.objects.all", side_effect=DatabaseError("down")):
            response = Client().get("/prize/list/")

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "internal_error")
