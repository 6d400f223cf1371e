"""
API v1 routes.

Defines REST endpoints for the company-incorporation registration API.
Domain exceptions are translated to HTTP errors here and nowhere else.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.api.dependencies import get_registration_service, get_requester
from src.api.models import (
    ErrorResponse,
    ExpiryCheckResponse,
    NotedRequest,
    PinRequest,
    RegistrationCreate,
    RegistrationPatch,
    RegistrationResponse,
    ReopenRequest,
    ShareDecisionRequest,
    ShareRequest,
    SweepResponse,
)
from src.domain.exceptions import (
    AccessDenied,
    CollaboratorUnavailable,
    RegistrationError,
    RegistrationNotFound,
    TransitionConflict,
)
from src.domain.models import Requester
from src.domain.registration import RegistrationService

router = APIRouter(tags=["v1"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Illegal workflow transition"},
    404: {"model": ErrorResponse, "description": "Registration not found"},
    422: {"description": "Validation error"},
    503: {"model": ErrorResponse, "description": "Registration store unavailable"},
}

_READ_RESPONSES = {
    403: {"model": ErrorResponse, "description": "Requester may not read this registration"},
    **_ERROR_RESPONSES,
}


def _http_error(exc: RegistrationError) -> HTTPException:
    """Map a domain exception to its HTTP error."""
    if isinstance(exc, RegistrationNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    if isinstance(exc, TransitionConflict):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, AccessDenied):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    if isinstance(exc, CollaboratorUnavailable):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")


@router.post(
    "/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"description": "Registration already existed"}, **_READ_RESPONSES},
    summary="Create a registration",
    description="Create a registration with an externally supplied id. "
    "Creating an id that already exists returns the stored registration "
    "to its owner; other users get 403.",
)
def create_registration(
    request_data: RegistrationCreate,
    response: Response,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration, created = service.create(
            request_data.id, request_data.user_id, request_data.to_patch()
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    if not created:
        response.status_code = status.HTTP_200_OK
    return RegistrationResponse.from_domain(registration)


@router.get(
    "/registrations",
    response_model=list[RegistrationResponse],
    responses=_ERROR_RESPONSES,
    summary="List registrations",
    description="List registrations owned by or shared with the requester "
    "(userId / userEmail). Without either, every registration is listed.",
)
def list_registrations(
    requester: Requester = Depends(get_requester),
    service: RegistrationService = Depends(get_registration_service),
) -> list[RegistrationResponse]:
    try:
        registrations = service.list(requester)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return [RegistrationResponse.from_domain(r) for r in registrations]


@router.get(
    "/registrations/{registration_id}",
    response_model=RegistrationResponse,
    responses=_READ_RESPONSES,
    summary="Read a registration",
)
def get_registration(
    registration_id: str,
    requester: Requester = Depends(get_requester),
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    """
    Read one registration.

    The owner and users with an approved share may read it.
    """
    try:
        registration = service.get(registration_id, requester)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.patch(
    "/registrations/{registration_id}",
    response_model=RegistrationResponse,
    responses=_ERROR_RESPONSES,
    summary="Update a registration",
    description="Merge the supplied fields into the registration. Omitted fields are untouched.",
)
def update_registration(
    registration_id: str,
    request_data: RegistrationPatch,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration = service.update(registration_id, request_data.to_patch())
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.post(
    "/registrations/{registration_id}/reopen",
    response_model=RegistrationResponse,
    responses=_ERROR_RESPONSES,
    summary="Reopen a registration at an earlier step",
)
def reopen_registration(
    registration_id: str,
    request_data: ReopenRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration = service.reopen(registration_id, request_data.step)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.delete(
    "/registrations/{registration_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERROR_RESPONSES,
    summary="Delete a registration and its documents",
)
def delete_registration(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> Response:
    try:
        service.delete(registration_id)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/registrations/{registration_id}/pin",
    response_model=RegistrationResponse,
    responses=_ERROR_RESPONSES,
    summary="Pin or unpin a registration",
)
def pin_registration(
    registration_id: str,
    request_data: PinRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration = service.set_pinned(registration_id, request_data.pinned)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.put(
    "/registrations/{registration_id}/noted",
    response_model=RegistrationResponse,
    responses=_ERROR_RESPONSES,
    summary="Mark secretary records as noted",
)
def note_registration(
    registration_id: str,
    request_data: NotedRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration = service.set_noted(registration_id, request_data.noted)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.post(
    "/registrations/{registration_id}/shares",
    response_model=RegistrationResponse,
    responses=_ERROR_RESPONSES,
    summary="Request shared access",
    description="Add a pending share request for an email. Pending requests grant no access.",
)
def request_share(
    registration_id: str,
    request_data: ShareRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration = service.request_share(
            registration_id, request_data.email, request_data.requested_by
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.put(
    "/registrations/{registration_id}/shares/{email}",
    response_model=RegistrationResponse,
    responses=_ERROR_RESPONSES,
    summary="Approve or reject a share request",
)
def respond_share(
    registration_id: str,
    email: str,
    request_data: ShareDecisionRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration = service.respond_share(
            registration_id, email, request_data.approve, request_data.responded_by
        )
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.delete(
    "/registrations/{registration_id}/shares/{email}",
    response_model=RegistrationResponse,
    responses=_ERROR_RESPONSES,
    summary="Revoke shared access",
)
def revoke_share(
    registration_id: str,
    email: str,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    try:
        registration = service.revoke_share(registration_id, email)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return RegistrationResponse.from_domain(registration)


@router.post(
    "/registrations/{registration_id}/check-expiry",
    response_model=ExpiryCheckResponse,
    responses=_ERROR_RESPONSES,
    summary="Check expiry and notify",
    description="Send the expiry notification if the registration is expired "
    "and no notification was sent today.",
)
def check_expiry(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> ExpiryCheckResponse:
    try:
        outcome = service.check_expiry(registration_id)
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return ExpiryCheckResponse.from_domain(outcome)


@router.post(
    "/expiry/sweep",
    response_model=SweepResponse,
    responses=_ERROR_RESPONSES,
    summary="Run the expiry sweep",
    description="Check every registration that can be expired. Intended to run daily.",
)
def sweep_expired(
    service: RegistrationService = Depends(get_registration_service),
) -> SweepResponse:
    try:
        report = service.sweep_expired()
    except RegistrationError as exc:
        raise _http_error(exc) from None
    return SweepResponse.from_domain(report)
