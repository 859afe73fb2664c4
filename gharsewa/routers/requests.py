from typing import Optional

from fastapi import APIRouter, Header, Query

from gharsewa.auth import assert_actor_authorized
from gharsewa.models import (
    ServiceRequest,
    ServiceRequestCompleteRequest,
    ServiceRequestCreate,
    ServiceRequestProviderAction,
)
from gharsewa.routers.errors import raise_directory_http_error
from gharsewa.services.directory_store import DirectoryStoreError
from gharsewa.services.request_store import request_store

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=ServiceRequest)
def create_request(
    request: ServiceRequestCreate,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(
        actor_user_id=request.customer_id,
        authorization=authorization,
        required_role="customer",
    )
    try:
        return request_store.create_request(
            customer_id=request.customer_id,
            description=request.description,
            location=request.location,
            wage=request.wage,
            contact_number=request.contact_number,
            latitude=request.latitude,
            longitude=request.longitude,
        )
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.get("", response_model=list[ServiceRequest])
def list_customer_requests(customer_id: str = Query(...)):
    try:
        return request_store.list_for_customer(customer_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.get("/open", response_model=list[ServiceRequest])
def list_open_requests(provider_id: str = Query(...)):
    try:
        return request_store.list_open(provider_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.get("/accepted", response_model=list[ServiceRequest])
def list_accepted_requests(provider_id: str = Query(...)):
    try:
        return request_store.list_accepted(provider_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.get("/{request_id}", response_model=ServiceRequest)
def get_request(request_id: str):
    try:
        return request_store.get_request(request_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.post("/{request_id}/accept", response_model=ServiceRequest)
def accept_request(
    request_id: str,
    request: ServiceRequestProviderAction,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(
        actor_user_id=request.provider_id,
        authorization=authorization,
        required_role="provider",
    )
    try:
        return request_store.accept(request_id, provider_id=request.provider_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.post("/{request_id}/not-interested", response_model=ServiceRequest)
def not_interested(
    request_id: str,
    request: ServiceRequestProviderAction,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(
        actor_user_id=request.provider_id,
        authorization=authorization,
        required_role="provider",
    )
    try:
        return request_store.mark_not_interested(request_id, provider_id=request.provider_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)


@router.post("/{request_id}/complete", response_model=ServiceRequest)
def complete_request(
    request_id: str,
    request: ServiceRequestCompleteRequest,
    authorization: Optional[str] = Header(default=None),
):
    assert_actor_authorized(
        actor_user_id=request.customer_id,
        authorization=authorization,
        required_role="customer",
    )
    try:
        return request_store.complete(request_id, customer_id=request.customer_id)
    except DirectoryStoreError as exc:
        raise_directory_http_error(exc)
