"""
Business rules for listings and requests.

Each function receives the verified principal and the repositories it needs
as keyword arguments, enforces the ownership rules, and raises the errors in
``shareplate.errors``. The HTTP layer only translates the results.
"""

from __future__ import annotations

import logging

from shareplate import errors
from shareplate.auth import Principal, require_owner, require_self
from shareplate.db import FoodRepository, FoodStatus, RequestRepository, RequestStatus

logger = logging.getLogger(__name__)

DECIDABLE_STATUSES = (RequestStatus.ACCEPTED.value, RequestStatus.REJECTED.value)


def _get_food_or_404(foods: FoodRepository, food_id: str) -> dict:
    food = foods.get(food_id)
    if food is None:
        raise errors.NotFound("Food not found")
    return food


def create_food(doc: dict, *, principal: Principal, foods: FoodRepository) -> str:
    food_id = foods.create(doc, principal.email)
    logger.info("Food %s listed by %s", food_id, principal.email)
    return food_id


def get_food(food_id: str, *, foods: FoodRepository) -> dict:
    return _get_food_or_404(foods, food_id)


def list_foods_for_owner(
    email: str, *, principal: Principal, foods: FoodRepository
) -> list[dict]:
    require_self(principal, email)
    return foods.list_by_owner(principal.email)


def update_food(
    food_id: str, fields: dict, *, principal: Principal, foods: FoodRepository
) -> int:
    food = _get_food_or_404(foods, food_id)
    require_owner(principal, food.get("donator_email"), "Forbidden: Only owner can update")
    return foods.update(food_id, fields)


def delete_food(food_id: str, *, principal: Principal, foods: FoodRepository) -> None:
    food = _get_food_or_404(foods, food_id)
    require_owner(principal, food.get("donator_email"), "Forbidden: Only owner can delete")
    if not foods.delete(food_id):
        # Removed by a concurrent call between the lookup and the delete.
        raise errors.NotFound("Food not found")
    logger.info("Food %s deleted by %s", food_id, principal.email)


def create_request(
    food_id: str,
    user_name: str,
    *,
    principal: Principal,
    foods: FoodRepository,
    requests: RequestRepository,
) -> str:
    food = foods.get(food_id)
    if food is None or food.get("food_status") != FoodStatus.AVAILABLE.value:
        raise errors.FoodUnavailable()
    request_id = requests.create(food_id, user_name, principal.email)
    logger.info("Request %s for food %s by %s", request_id, food_id, principal.email)
    return request_id


def list_requests_for_requester(
    email: str, *, principal: Principal, requests: RequestRepository
) -> list[dict]:
    require_self(principal, email)
    return requests.list_by_requester(principal.email)


def delete_request(
    request_id: str, *, principal: Principal, requests: RequestRepository
) -> None:
    # A missing request and someone else's request look the same to the caller.
    if not requests.delete(request_id, principal.email):
        raise errors.NotFound("Request not found or unauthorized")


def decide_request(
    request_id: str,
    status: str | None,
    *,
    principal: Principal,
    foods: FoodRepository,
    requests: RequestRepository,
) -> RequestStatus:
    """Accept or reject a pending request on behalf of the food's donor.

    Accepting is a two-step saga: the request moves Pending -> Accepted, then
    the food moves Available -> Donated. Both steps are conditional updates,
    so of two concurrent accepts for the same food only one can mark it
    Donated. If the second step fails or loses that race the request is put
    back to Pending before the error is raised.
    """
    if status not in DECIDABLE_STATUSES:
        raise errors.BadRequest("Invalid status")
    new_status = RequestStatus(status)

    request = requests.get(request_id)
    if request is None:
        raise errors.NotFound("Request not found")
    food = _get_food_or_404(foods, request["food_id"])
    require_owner(principal, food.get("donator_email"), "Forbidden: Only owner can update")

    if request["status"] != RequestStatus.PENDING.value:
        raise errors.InvalidTransition(
            f"Request already {request['status'].lower()}"
        )
    if (
        new_status is RequestStatus.ACCEPTED
        and food.get("food_status") != FoodStatus.AVAILABLE.value
    ):
        raise errors.Conflict("Food already donated")

    if not requests.update_status(request_id, new_status, RequestStatus.PENDING):
        # Someone else decided it after we read it.
        raise errors.InvalidTransition()

    if new_status is RequestStatus.ACCEPTED:
        _mark_food_donated(request_id, request["food_id"], foods=foods, requests=requests)

    logger.info(
        "Request %s %s by %s", request_id, new_status.value.lower(), principal.email
    )
    return new_status


def _mark_food_donated(
    request_id: str,
    food_id: str,
    *,
    foods: FoodRepository,
    requests: RequestRepository,
) -> None:
    try:
        updated = foods.set_status(
            food_id, FoodStatus.DONATED, expected=FoodStatus.AVAILABLE
        )
    except errors.ShareplateError as exc:
        _revert_acceptance(request_id, food_id, requests=requests)
        raise errors.StorageError("Failed to update request") from exc

    if not updated:
        # The food was donated or deleted after we read it.
        _revert_acceptance(request_id, food_id, requests=requests)
        if foods.get(food_id) is None:
            raise errors.NotFound("Food not found")
        raise errors.Conflict("Food already donated")


def _revert_acceptance(
    request_id: str, food_id: str, *, requests: RequestRepository
) -> None:
    logger.warning(
        "Marking food %s donated failed; reverting request %s to Pending",
        food_id,
        request_id,
    )
    try:
        requests.update_status(
            request_id, RequestStatus.PENDING, RequestStatus.ACCEPTED
        )
    except errors.ShareplateError:
        logger.error(
            "Compensation failed: request %s is Accepted but food %s is not Donated",
            request_id,
            food_id,
        )
