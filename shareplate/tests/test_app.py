import unittest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from shareplate.app import create_app
from shareplate.auth import InMemoryIdentityVerifier
from shareplate.config import Settings
from shareplate.dependencies import in_memory_backends

DONOR = "donor@example.com"
REQUESTER = "hungry@example.com"
OTHER = "stranger@example.com"


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.verifier = InMemoryIdentityVerifier()
        self.verifier.register("donor-token", DONOR)
        self.verifier.register("requester-token", REQUESTER)
        self.verifier.register("other-token", OTHER)
        self.backends = in_memory_backends(self.verifier)
        settings = Settings(use_in_memory_backends=True)
        self.client = TestClient(create_app(settings=settings, backends=self.backends))

    def add_food(self, token="donor-token", **fields):
        body = {"food_name": "Rice", "food_quantity": "3 kg"}
        body.update(fields)
        response = self.client.post("/foods", json=body, headers=_auth(token))
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["insertedId"]

    def add_request(self, food_id, token="requester-token", user_name="Hungry"):
        return self.client.post(
            "/requests",
            json={"food_id": food_id, "user_name": user_name},
            headers=_auth(token),
        )


class RootTests(ApiTestCase):
    def test_root_banner(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "SharePlate Server is Running...")

    def test_health_with_in_memory_store(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_health_reports_unreachable_database(self):
        self.backends.store = MagicMock()
        self.backends.store.ping.return_value = False
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(
            response.json(), {"status": "degraded", "database": "unreachable"}
        )

    def test_health_documents_503(self):
        schema = self.client.get("/openapi.json").json()
        self.assertIn("503", schema["paths"]["/health"]["get"]["responses"])


class AuthenticationTests(ApiTestCase):
    def test_missing_header_is_401(self):
        response = self.client.post("/foods", json={"food_name": "Bread"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Unauthorized: No token provided")

    def test_header_without_bearer_prefix_is_401(self):
        response = self.client.post(
            "/foods", json={}, headers={"Authorization": "Token donor-token"}
        )
        self.assertEqual(response.status_code, 401)

    def test_unknown_token_is_401(self):
        response = self.client.post("/foods", json={}, headers=_auth("forged"))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Unauthorized: Invalid token")

    def test_anonymous_listing_routes_need_no_token(self):
        food_id = self.add_food()
        self.assertEqual(self.client.get("/foods").status_code, 200)
        self.assertEqual(self.client.get("/foods/featured").status_code, 200)
        self.assertEqual(self.client.get(f"/foods/{food_id}").status_code, 200)


class FoodTests(ApiTestCase):
    def test_create_forces_status_and_owner(self):
        food_id = self.add_food(
            food_status="Donated", donator_email="someone-else@example.com"
        )
        response = self.client.get(f"/foods/{food_id}")
        self.assertEqual(response.status_code, 200)
        food = response.json()
        self.assertEqual(food["_id"], food_id)
        self.assertEqual(food["food_status"], "Available")
        self.assertEqual(food["donator_email"], DONOR)
        self.assertEqual(food["food_name"], "Rice")

    def test_create_keeps_extra_donor_attributes(self):
        food_id = self.add_food(allergens=["nuts"])
        food = self.client.get(f"/foods/{food_id}").json()
        self.assertEqual(food["allergens"], ["nuts"])

    def test_create_accepts_non_string_donor_attributes(self):
        food_id = self.add_food(
            food_quantity=2.5,
            pickup_location={"lat": 23.8, "lng": 90.4},
            expired_date=20261231,
        )
        food = self.client.get(f"/foods/{food_id}").json()
        self.assertEqual(food["food_quantity"], 2.5)
        self.assertEqual(food["pickup_location"], {"lat": 23.8, "lng": 90.4})
        self.assertEqual(food["expired_date"], 20261231)

    def test_update_accepts_non_string_donor_attributes(self):
        food_id = self.add_food()
        response = self.client.put(
            f"/foods/{food_id}",
            json={"food_quantity": 7, "additional_notes": ["keep cold"]},
            headers=_auth("donor-token"),
        )
        self.assertEqual(response.status_code, 200, response.text)
        food = self.client.get(f"/foods/{food_id}").json()
        self.assertEqual(food["food_quantity"], 7)
        self.assertEqual(food["additional_notes"], ["keep cold"])

    def test_get_unknown_food_is_404(self):
        response = self.client.get("/foods/0123456789abcdef01234567")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Food not found")

    def test_get_malformed_id_is_400(self):
        response = self.client.get("/foods/not-an-id")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid ID format")

    def test_list_returns_only_available(self):
        available = self.add_food(food_name="Soup")
        donated = self.add_food(food_name="Bread")
        self.backends.foods.set_status(donated, "Donated")

        ids = [f["_id"] for f in self.client.get("/foods").json()]
        self.assertIn(available, ids)
        self.assertNotIn(donated, ids)

    def test_featured_is_capped_at_six(self):
        for i in range(8):
            self.add_food(food_name=f"Meal {i}", featured=True)
        self.add_food(food_name="Plain")
        donated = self.add_food(food_name="Gone", featured=True)
        self.backends.foods.set_status(donated, "Donated")

        featured = self.client.get("/foods/featured").json()
        self.assertEqual(len(featured), 6)
        for food in featured:
            self.assertTrue(food["featured"])
            self.assertEqual(food["food_status"], "Available")

    def test_owner_can_update(self):
        food_id = self.add_food()
        response = self.client.put(
            f"/foods/{food_id}",
            json={"food_quantity": "5 kg", "_id": "ffffffffffffffffffffffff"},
            headers=_auth("donor-token"),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Food updated successfully")
        food = self.client.get(f"/foods/{food_id}").json()
        self.assertEqual(food["_id"], food_id)
        self.assertEqual(food["food_quantity"], "5 kg")
        self.assertEqual(food["food_name"], "Rice")

    def test_update_cannot_change_owner(self):
        food_id = self.add_food()
        self.client.put(
            f"/foods/{food_id}",
            json={"donator_email": OTHER},
            headers=_auth("donor-token"),
        )
        food = self.client.get(f"/foods/{food_id}").json()
        self.assertEqual(food["donator_email"], DONOR)

    def test_non_owner_update_is_403_and_unchanged(self):
        food_id = self.add_food()
        response = self.client.put(
            f"/foods/{food_id}",
            json={"food_name": "Stolen"},
            headers=_auth("other-token"),
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.client.get(f"/foods/{food_id}").json()["food_name"], "Rice")

    def test_update_unknown_food_is_404(self):
        response = self.client.put(
            "/foods/0123456789abcdef01234567",
            json={"food_name": "x"},
            headers=_auth("donor-token"),
        )
        self.assertEqual(response.status_code, 404)

    def test_owner_can_delete(self):
        food_id = self.add_food()
        response = self.client.delete(f"/foods/{food_id}", headers=_auth("donor-token"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Food deleted successfully")
        self.assertEqual(self.client.get(f"/foods/{food_id}").status_code, 404)

    def test_delete_twice_is_404(self):
        food_id = self.add_food()
        self.client.delete(f"/foods/{food_id}", headers=_auth("donor-token"))
        response = self.client.delete(f"/foods/{food_id}", headers=_auth("donor-token"))
        self.assertEqual(response.status_code, 404)

    def test_non_owner_delete_is_403(self):
        food_id = self.add_food()
        response = self.client.delete(f"/foods/{food_id}", headers=_auth("other-token"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.client.get(f"/foods/{food_id}").status_code, 200)

    def test_my_foods_self_only(self):
        mine = self.add_food()
        self.add_food(token="other-token")

        response = self.client.get(f"/my-foods/{DONOR}", headers=_auth("donor-token"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([f["_id"] for f in response.json()], [mine])

        response = self.client.get(f"/my-foods/{DONOR}", headers=_auth("other-token"))
        self.assertEqual(response.status_code, 403)


class RequestTests(ApiTestCase):
    def test_create_and_duplicate(self):
        food_id = self.add_food()
        response = self.add_request(food_id)
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["message"], "Request submitted successfully")
        self.assertTrue(body["requestId"])

        again = self.add_request(food_id)
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["message"], "Already requested this food")

    def test_missing_fields_is_400(self):
        food_id = self.add_food()
        response = self.client.post(
            "/requests", json={"food_id": food_id}, headers=_auth("requester-token")
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Missing required fields")

    def test_request_for_unknown_or_donated_food_is_404(self):
        response = self.add_request("0123456789abcdef01234567")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Food not available")

        food_id = self.add_food()
        self.backends.foods.set_status(food_id, "Donated")
        self.assertEqual(self.add_request(food_id).status_code, 404)

    def test_stored_request_fields(self):
        food_id = self.add_food()
        self.add_request(food_id, user_name="Hungry Person")
        response = self.client.get(
            f"/requests/{REQUESTER}", headers=_auth("requester-token")
        )
        self.assertEqual(response.status_code, 200)
        [request] = response.json()
        self.assertEqual(request["food_id"], food_id)
        self.assertEqual(request["user_name"], "Hungry Person")
        self.assertEqual(request["user_email"], REQUESTER)
        self.assertEqual(request["status"], "Pending")
        self.assertIn("requested_at", request)

    def test_list_requests_for_other_email_is_403(self):
        response = self.client.get(f"/requests/{REQUESTER}", headers=_auth("other-token"))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["message"], "Forbidden: Access denied")

    def test_requester_can_delete_own_request(self):
        food_id = self.add_food()
        request_id = self.add_request(food_id).json()["requestId"]

        response = self.client.delete(
            f"/requests/{request_id}", headers=_auth("other-token")
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Request not found or unauthorized")

        response = self.client.delete(
            f"/requests/{request_id}", headers=_auth("requester-token")
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Request deleted successfully")

        response = self.client.delete(
            f"/requests/{request_id}", headers=_auth("requester-token")
        )
        self.assertEqual(response.status_code, 404)

    def test_request_can_be_made_again_after_deleting(self):
        food_id = self.add_food()
        request_id = self.add_request(food_id).json()["requestId"]
        self.client.delete(f"/requests/{request_id}", headers=_auth("requester-token"))
        self.assertEqual(self.add_request(food_id).status_code, 201)


class DecisionTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.food_id = self.add_food()
        self.request_id = self.add_request(self.food_id).json()["requestId"]

    def patch(self, status, token="donor-token", request_id=None):
        return self.client.patch(
            f"/requests/{request_id or self.request_id}",
            json={"status": status},
            headers=_auth(token),
        )

    def request_status(self):
        return self.backends.requests.get(self.request_id)["status"]

    def test_accept_marks_food_donated(self):
        response = self.patch("Accepted")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Request accepted successfully.")
        self.assertEqual(self.request_status(), "Accepted")

        food = self.client.get(f"/foods/{self.food_id}").json()
        self.assertEqual(food["food_status"], "Donated")
        self.assertNotIn(self.food_id, [f["_id"] for f in self.client.get("/foods").json()])

    def test_reject_leaves_food_available(self):
        response = self.patch("Rejected")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Request rejected successfully.")
        self.assertEqual(self.request_status(), "Rejected")
        food = self.client.get(f"/foods/{self.food_id}").json()
        self.assertEqual(food["food_status"], "Available")

    def test_non_owner_is_403_and_status_unchanged(self):
        response = self.patch("Accepted", token="other-token")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.request_status(), "Pending")

    def test_requester_cannot_accept_own_request(self):
        self.assertEqual(self.patch("Accepted", token="requester-token").status_code, 403)

    def test_invalid_status_is_400(self):
        for status in ("Pending", "accepted", None):
            response = self.patch(status)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["message"], "Invalid status")

    def test_unknown_request_is_404(self):
        response = self.patch("Accepted", request_id="0123456789abcdef01234567")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Request not found")

    def test_decided_request_cannot_be_decided_again(self):
        self.assertEqual(self.patch("Rejected").status_code, 200)
        response = self.patch("Accepted")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(self.request_status(), "Rejected")

    def test_accepting_second_request_for_donated_food_is_409(self):
        self.verifier.register("late-token", "late@example.com")
        late_id = self.add_request(self.food_id, token="late-token").json()["requestId"]
        self.assertEqual(self.patch("Accepted").status_code, 200)

        response = self.patch("Accepted", request_id=late_id)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["message"], "Food already donated")
        self.assertEqual(self.backends.requests.get(late_id)["status"], "Pending")

        self.assertEqual(self.patch("Rejected", request_id=late_id).status_code, 200)


if __name__ == "__main__":
    unittest.main()
