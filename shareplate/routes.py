"""
HTTP routes for the SharePlate API.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, PlainTextResponse

from shareplate import services
from shareplate.auth import Principal
from shareplate.config import Settings
from shareplate.db import FoodRepository, RequestRepository
from shareplate.dependencies import (
    Backends,
    get_app_settings,
    get_backends,
    get_food_repository,
    get_principal,
    get_request_repository,
)
from shareplate.schemas import (
    FoodCreate,
    FoodCreatedResponse,
    FoodUpdate,
    FoodUpdatedResponse,
    HealthResponse,
    MessageResponse,
    RequestCreate,
    RequestCreatedResponse,
    RequestStatusUpdate,
)

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
def read_root():
    return "SharePlate Server is Running..."


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse, "description": "Database unreachable"}},
)
def health(backends: Backends = Depends(get_backends)):
    if not backends.ping():
        return JSONResponse(
            status_code=503, content={"status": "degraded", "database": "unreachable"}
        )
    return HealthResponse(status="ok", database="connected")


# ----------------- Foods -----------------


@router.post("/foods", response_model=FoodCreatedResponse, status_code=201)
def add_food(
    payload: FoodCreate,
    principal: Principal = Depends(get_principal),
    foods: FoodRepository = Depends(get_food_repository),
):
    food_id = services.create_food(
        payload.model_dump(exclude_none=True), principal=principal, foods=foods
    )
    return FoodCreatedResponse(insertedId=food_id)


@router.get("/foods")
def list_available_foods(foods: FoodRepository = Depends(get_food_repository)):
    return foods.list_available()


@router.get("/foods/featured")
def list_featured_foods(
    foods: FoodRepository = Depends(get_food_repository),
    settings: Settings = Depends(get_app_settings),
):
    return foods.list_featured(limit=settings.featured_limit)


@router.get("/foods/{food_id}")
def get_food(food_id: str, foods: FoodRepository = Depends(get_food_repository)):
    return services.get_food(food_id, foods=foods)


@router.put("/foods/{food_id}", response_model=FoodUpdatedResponse)
def update_food(
    food_id: str,
    payload: FoodUpdate,
    principal: Principal = Depends(get_principal),
    foods: FoodRepository = Depends(get_food_repository),
):
    modified = services.update_food(
        food_id,
        payload.model_dump(exclude_unset=True),
        principal=principal,
        foods=foods,
    )
    return FoodUpdatedResponse(message="Food updated successfully", modifiedCount=modified)


@router.delete("/foods/{food_id}", response_model=MessageResponse)
def delete_food(
    food_id: str,
    principal: Principal = Depends(get_principal),
    foods: FoodRepository = Depends(get_food_repository),
):
    services.delete_food(food_id, principal=principal, foods=foods)
    return MessageResponse(message="Food deleted successfully")


@router.get("/my-foods/{email}")
def list_my_foods(
    email: str,
    principal: Principal = Depends(get_principal),
    foods: FoodRepository = Depends(get_food_repository),
):
    return services.list_foods_for_owner(email, principal=principal, foods=foods)


# ----------------- Requests -----------------


@router.post("/requests", response_model=RequestCreatedResponse, status_code=201)
def submit_request(
    payload: RequestCreate,
    principal: Principal = Depends(get_principal),
    foods: FoodRepository = Depends(get_food_repository),
    requests: RequestRepository = Depends(get_request_repository),
):
    request_id = services.create_request(
        payload.food_id,
        payload.user_name,
        principal=principal,
        foods=foods,
        requests=requests,
    )
    return RequestCreatedResponse(
        message="Request submitted successfully", requestId=request_id
    )


@router.get("/requests/{email}")
def list_my_requests(
    email: str,
    principal: Principal = Depends(get_principal),
    requests: RequestRepository = Depends(get_request_repository),
):
    return services.list_requests_for_requester(
        email, principal=principal, requests=requests
    )


@router.delete("/requests/{request_id}", response_model=MessageResponse)
def delete_request(
    request_id: str,
    principal: Principal = Depends(get_principal),
    requests: RequestRepository = Depends(get_request_repository),
):
    services.delete_request(request_id, principal=principal, requests=requests)
    return MessageResponse(message="Request deleted successfully")


@router.patch("/requests/{request_id}", response_model=MessageResponse)
def decide_request(
    request_id: str,
    payload: RequestStatusUpdate,
    principal: Principal = Depends(get_principal),
    foods: FoodRepository = Depends(get_food_repository),
    requests: RequestRepository = Depends(get_request_repository),
):
    status = services.decide_request(
        request_id,
        payload.status,
        principal=principal,
        foods=foods,
        requests=requests,
    )
    return MessageResponse(message=f"Request {status.value.lower()} successfully.")
