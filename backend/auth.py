"""Cognito-backed signup, confirmation, login and password flows under ``/auth``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Mapping

from backend import aws
from backend.api_gateway import ApiRequest, dispatch, route, success
from learnhub.config import require_setting
from learnhub.errors import ApiError, ConflictError, NotFoundError, ValidationError
from learnhub.identity import (
    client_error_code,
    device_info,
    hash_token,
    is_e164,
    map_client_error,
    normalize_phone,
    secret_hash,
)
from learnhub.records import is_missing, new_id, rfc3339_after, utc_now_rfc3339
from learnhub.resources import SESSIONS, USERS
from learnhub.store import DynamoDbResourceStore

logger = logging.getLogger(__name__)

REFRESH_TOKEN_VALIDITY_SECONDS = 30 * 24 * 3600

SIGNUP_ERRORS = {
    "InvalidPasswordException": (400, "Password does not meet the policy requirements"),
    "InvalidParameterException": (400, "Invalid parameters provided"),
    "TooManyRequestsException": (429, "Too many requests. Please try again later"),
    "LimitExceededException": (429, "Attempt limit exceeded. Please try again later"),
    "NotAuthorizedException": (403, "Not authorized to perform this action"),
}
CONFIRM_ERRORS = {
    "CodeMismatchException": (400, "Invalid confirmation code"),
    "ExpiredCodeException": (400, "Confirmation code has expired. Please request a new one"),
    "NotAuthorizedException": (403, "User cannot be confirmed"),
    "LimitExceededException": (429, "Attempt limit exceeded. Please try again later"),
    "UserNotFoundException": (404, "User not found"),
}
FORGOT_ERRORS = {
    "UserNotFoundException": (400, "Unable to process the password reset request"),
    "InvalidParameterException": (400, "Unable to process the password reset request"),
    "InvalidLambdaResponseException": (400, "Unable to process the password reset request"),
    "NotAuthorizedException": (403, "Not authorized to reset the password"),
    "LimitExceededException": (429, "Attempt limit exceeded. Please try again later"),
}
RESET_ERRORS = {
    "CodeMismatchException": (400, "Invalid verification code"),
    "ExpiredCodeException": (400, "Verification code has expired. Please request a new one"),
    "InvalidPasswordException": (400, "Password does not meet the policy requirements"),
    "UserNotFoundException": (400, "Unable to reset the password"),
    "NotAuthorizedException": (403, "Not authorized to reset the password"),
    "LimitExceededException": (429, "Attempt limit exceeded. Please try again later"),
}
LOGIN_ERRORS = {
    "NotAuthorizedException": (401, "Incorrect username or password"),
    "UserNotConfirmedException": (403, "User account is not confirmed"),
    "UserNotFoundException": (404, "User not found"),
    "InvalidParameterException": (400, "Invalid parameters provided"),
    "TooManyRequestsException": (429, "Too many requests. Please try again later"),
}
LOGOUT_ERRORS = {
    "UserNotFoundException": (404, "User not found"),
    "NotAuthorizedException": (403, "Not authorized to log out this user"),
}
ADMIN_PASSWORD_ERRORS = {
    "InvalidPasswordException": (400, "Password does not meet the policy requirements"),
    "UserNotFoundException": (400, "User not found"),
    "NotAuthorizedException": (403, "Not authorized to reset the password"),
}
RESEND_ERRORS = {
    "UserNotFoundException": (404, "User not found"),
    "InvalidParameterException": (400, "Invalid parameters provided"),
    "LimitExceededException": (429, "Attempt limit exceeded. Please try again later"),
    "TooManyRequestsException": (429, "Too many requests. Please try again later"),
    "NotAuthorizedException": (403, "Not authorized to resend the confirmation code"),
    "CodeDeliveryFailureException": (502, "Failed to deliver the confirmation code"),
    "InvalidSmsRoleAccessPolicyException": (500, "SMS delivery is not configured"),
    "InvalidSmsRoleTrustRelationshipException": (500, "SMS delivery is not configured"),
}
ATTRIBUTE_ERRORS = {
    "NotAuthorizedException": (401, "Invalid or expired access token"),
    "LimitExceededException": (429, "Attempt limit exceeded. Please try again later"),
    "TooManyRequestsException": (429, "Too many requests. Please try again later"),
    "InvalidParameterException": (400, "Invalid parameters provided"),
    "CodeDeliveryFailureException": (502, "Failed to deliver the verification code"),
}
CHANGE_PASSWORD_ERRORS = {
    "NotAuthorizedException": (403, "Incorrect current password"),
    "InvalidPasswordException": (400, "Password does not meet the policy requirements"),
    "UserNotFoundException": (404, "User not found"),
    "LimitExceededException": (429, "Attempt limit exceeded. Please try again later"),
    "TooManyRequestsException": (429, "Too many requests. Please try again later"),
}


@dataclass(frozen=True)
class CognitoSettings:
    user_pool_id: str
    client_id: str
    client_secret: str

    def secret_hash(self, username: str) -> str:
        return secret_hash(username, client_id=self.client_id, client_secret=self.client_secret)


@dataclass(frozen=True)
class Channel:
    """How one sign-in identifier (email or phone) is read from requests."""

    name: str
    body_field: str
    attribute: str
    label: str
    missing_message: str
    login_method: str

    def username(self, body: Mapping[str, Any]) -> str:
        if is_missing(body.get(self.body_field)):
            raise ValidationError(self.missing_message)
        raw = str(body[self.body_field]).strip()
        return normalize_phone(raw) if self.name == "phone" else raw.lower()


EMAIL = Channel(
    name="email",
    body_field="email",
    attribute="email",
    label="email",
    missing_message="Missing Email Fields",
    login_method="jwt_cognito",
)
PHONE = Channel(
    name="phone",
    body_field="phoneNumber",
    attribute="phone_number",
    label="phone number",
    missing_message="Missing Phone Number Field",
    login_method="jwt_cognito_phone",
)


def cognito_settings() -> CognitoSettings:
    return CognitoSettings(
        user_pool_id=require_setting("USER_POOL_ID"),
        client_id=require_setting("CLIENT_ID"),
        client_secret=require_setting("CLIENT_SECRET"),
    )


def call_cognito(
    operation: Callable[[], Dict[str, Any]],
    errors: Mapping[str, tuple[int, str]],
    *,
    default: tuple[int, str],
) -> Dict[str, Any]:
    """Run one Cognito call, mapping ``ClientError`` codes through ``errors``."""
    from botocore.exceptions import ClientError

    try:
        return operation()
    except ClientError as exc:
        raise map_client_error(exc, errors, default=default) from exc


def user_attributes(response: Mapping[str, Any]) -> Dict[str, str]:
    attributes = response.get("UserAttributes") or response.get("Attributes") or []
    return {
        attribute["Name"]: attribute.get("Value", "")
        for attribute in attributes
        if isinstance(attribute, dict) and "Name" in attribute
    }


def _require(body: Mapping[str, Any], field: str, message: str) -> str:
    if is_missing(body.get(field)):
        raise ValidationError(message)
    return str(body[field]).strip()


def _profile_store() -> DynamoDbResourceStore:
    return aws.resource_store(USERS)


def _code(body: Mapping[str, Any], message: str) -> str:
    for field in ("code", "confirmationCode"):
        if not is_missing(body.get(field)):
            return str(body[field]).strip()
    raise ValidationError(message)


def signup(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    body = request.json_body()
    username = channel.username(body)
    first_name = _require(body, "firstName", "Missing First Name Fields")
    last_name = _require(body, "lastName", "Missing Last Name Fields")
    password = _require(body, "password", "Missing Password Fields")
    if channel is PHONE and not is_e164(username):
        raise ValidationError("Phone number must be in E.164 format (e.g., +1234567890)")

    settings = cognito_settings()
    exists_message = f"An account with this {channel.label} already exists. Please log in."
    response = call_cognito(
        lambda: aws.cognito_client().sign_up(
            ClientId=settings.client_id,
            SecretHash=settings.secret_hash(username),
            Username=username,
            Password=password,
            UserAttributes=[
                {"Name": channel.attribute, "Value": username},
                {"Name": "given_name", "Value": first_name},
                {"Name": "family_name", "Value": last_name},
                {"Name": "name", "Value": f"{first_name} {last_name}"},
            ],
        ),
        {**SIGNUP_ERRORS, "UsernameExistsException": (409, exists_message)},
        default=(500, "Signup failed"),
    )

    user_id = response.get("UserSub")
    try:
        _profile_store().put(
            {
                "user_id": user_id,
                channel.attribute: username,
                "first_name": first_name,
                "last_name": last_name,
                "full_name": f"{first_name} {last_name}",
                "confirmation_status": "pending",
                "status": "active",
                "created_at": utc_now_rfc3339(),
            }
        )
    except Exception:
        logger.warning("profile write failed after signup for %s", user_id, exc_info=True)

    return success(
        {
            "userId": user_id,
            channel.body_field: username,
            "confirmationRequired": not response.get("UserConfirmed", False),
        },
        message="User registered successfully. Please check for the confirmation code.",
        status_code=201,
    )


def _mark_profile_confirmed(user_id: str) -> None:
    """Best-effort: a missing profile row or failed write is logged and never raised."""
    store = _profile_store()
    try:
        if store.get(user_id) is None:
            logger.warning("no profile row to confirm for %s", user_id)
            return
        store.update(user_id, {"confirmation_status": "confirmed", "updated_at": utc_now_rfc3339()})
    except Exception:
        logger.warning("profile confirmation update failed for %s", user_id, exc_info=True)


def confirm_signup(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    body = request.json_body()
    message = (
        "Email and confirmation code are required"
        if channel is EMAIL
        else "Phone Number and confirmation code are required"
    )
    if is_missing(body.get(channel.body_field)):
        raise ValidationError(message)
    username = channel.username(body)
    code = _code(body, message)

    settings = cognito_settings()
    client = aws.cognito_client()
    call_cognito(
        lambda: client.confirm_sign_up(
            ClientId=settings.client_id,
            SecretHash=settings.secret_hash(username),
            Username=username,
            ConfirmationCode=code,
        ),
        CONFIRM_ERRORS,
        default=(500, "Confirmation failed"),
    )
    user = call_cognito(
        lambda: client.admin_get_user(UserPoolId=settings.user_pool_id, Username=username),
        CONFIRM_ERRORS,
        default=(500, "Confirmation failed"),
    )
    user_id = user_attributes(user).get("sub")
    if user_id:
        _mark_profile_confirmed(user_id)
    return success(
        {"userId": user_id, channel.body_field: username, "confirmed": True},
        message="Account confirmed successfully",
    )


def forgot_password(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    username = channel.username(request.json_body())
    settings = cognito_settings()
    response = call_cognito(
        lambda: aws.cognito_client().forgot_password(
            ClientId=settings.client_id,
            SecretHash=settings.secret_hash(username),
            Username=username,
        ),
        FORGOT_ERRORS,
        default=(500, "Failed to initiate password reset"),
    )
    delivery = response.get("CodeDeliveryDetails") or {}
    return success(
        {
            "deliveryMedium": delivery.get("DeliveryMedium"),
            "destination": delivery.get("Destination"),
        },
        message="Password reset code sent successfully",
    )


def confirm_forgot_password(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    body = request.json_body()
    username = channel.username(body)
    code = _code(body, "Verification code is required")
    new_password = _require(body, "newPassword", "New password is required")

    settings = cognito_settings()
    call_cognito(
        lambda: aws.cognito_client().confirm_forgot_password(
            ClientId=settings.client_id,
            SecretHash=settings.secret_hash(username),
            Username=username,
            ConfirmationCode=code,
            Password=new_password,
        ),
        RESET_ERRORS,
        default=(500, "Failed to reset password"),
    )
    return success(message="Password reset successfully")


def _token_payload(result: Mapping[str, Any], *, include_refresh: bool = True) -> Dict[str, Any]:
    expires_in = int(result.get("ExpiresIn", 3600))
    payload: Dict[str, Any] = {
        "access_token": result.get("AccessToken"),
        "id_token": result.get("IdToken"),
        "token_type": result.get("TokenType") or "Bearer",
        "expires_in": expires_in,
        "access_token_expires_at": rfc3339_after(seconds=expires_in),
        "id_token_expires_at": rfc3339_after(seconds=expires_in),
    }
    if include_refresh:
        payload["refresh_token"] = result.get("RefreshToken")
        payload["refresh_token_expires_at"] = rfc3339_after(seconds=REFRESH_TOKEN_VALIDITY_SECONDS)
        payload["token_validity"] = {
            "access_token": f"{expires_in} seconds",
            "id_token": f"{expires_in} seconds",
            "refresh_token": "30 days",
        }
    return payload


def _password_auth(
    settings: CognitoSettings,
    username: str,
    password: str,
    errors: Mapping[str, tuple[int, str]],
) -> Dict[str, Any]:
    response = call_cognito(
        lambda: aws.cognito_client().initiate_auth(
            AuthFlow="USER_PASSWORD_AUTH",
            ClientId=settings.client_id,
            AuthParameters={
                "USERNAME": username,
                "PASSWORD": password,
                "SECRET_HASH": settings.secret_hash(username),
            },
        ),
        errors,
        default=(500, "Authentication failed"),
    )
    result = response.get("AuthenticationResult")
    if not isinstance(result, dict):
        challenge = response.get("ChallengeName", "unknown")
        raise ApiError("Additional authentication challenge required", status_code=401, error=challenge)
    return result


def login(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    body = request.json_body()
    username = channel.username(body)
    password = _require(body, "password", "Missing Password Fields")

    settings = cognito_settings()
    result = _password_auth(settings, username, password, LOGIN_ERRORS)
    user = call_cognito(
        lambda: aws.cognito_client().admin_get_user(UserPoolId=settings.user_pool_id, Username=username),
        LOGIN_ERRORS,
        default=(500, "Authentication failed"),
    )
    attributes = user_attributes(user)
    user_id = attributes.get("sub")
    tokens = _token_payload(result)

    session_id = new_id()
    created_at = utc_now_rfc3339()
    try:
        aws.resource_store(SESSIONS).put(
            {
                "session_id": session_id,
                "user_id": user_id,
                channel.body_field: username,
                "token_sha": hash_token(str(tokens["access_token"])),
                "device_info": device_info(request.user_agent),
                "ip_address": request.client_ip,
                "created_at": created_at,
                "last_activity": created_at,
                "last_active_at": created_at,
                "expires_at": tokens["access_token_expires_at"],
                "is_active": True,
                "login_method": channel.login_method,
            }
        )
    except Exception:
        logger.warning("session write failed after login for %s", user_id, exc_info=True)

    return success(
        {
            **tokens,
            "user": {
                "user_id": user_id,
                "email": attributes.get("email"),
                "phone_number": attributes.get("phone_number"),
                "username": user.get("Username", username),
            },
            "session": {"session_id": session_id, "created_at": created_at},
        },
        message="Login successful",
    )


def refresh_token(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    token = _require(body, "refresh_token", "refresh_token is required")
    username = _require(body, "username", "username is required")

    settings = cognito_settings()
    try:
        response = call_cognito(
            lambda: aws.cognito_client().initiate_auth(
                AuthFlow="REFRESH_TOKEN_AUTH",
                ClientId=settings.client_id,
                AuthParameters={
                    "REFRESH_TOKEN": token,
                    "SECRET_HASH": settings.secret_hash(username),
                },
            ),
            {"NotAuthorizedException": (401, "Refresh token is invalid or expired")},
            default=(500, "Token refresh failed"),
        )
    except ApiError as exc:
        if exc.status_code == 401:
            exc.extra["error_code"] = "REFRESH_TOKEN_EXPIRED"
        raise
    return success(
        _token_payload(response.get("AuthenticationResult") or {}, include_refresh=False),
        message="Token refreshed successfully",
    )


def logout(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    username = channel.username(request.json_body())
    settings = cognito_settings()
    client = aws.cognito_client()
    call_cognito(
        lambda: client.admin_get_user(UserPoolId=settings.user_pool_id, Username=username),
        LOGOUT_ERRORS,
        default=(500, "Logout failed"),
    )
    call_cognito(
        lambda: client.admin_user_global_sign_out(UserPoolId=settings.user_pool_id, Username=username),
        LOGOUT_ERRORS,
        default=(500, "Logout failed"),
    )
    return success(message="Logged out successfully")


def admin_reset_password(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    body = request.json_body()
    username = channel.username(body)
    new_password = _require(body, "newPassword", "New password is required")
    settings = cognito_settings()
    call_cognito(
        lambda: aws.cognito_client().admin_set_user_password(
            UserPoolId=settings.user_pool_id,
            Username=username,
            Password=new_password,
            Permanent=False,
        ),
        ADMIN_PASSWORD_ERRORS,
        default=(500, "Failed to reset password"),
    )
    return success(message="Temporary password set. The user must change it at next sign-in")


def resend_confirmation_code(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    from botocore.exceptions import ClientError

    username = channel.username(request.json_body())
    settings = cognito_settings()
    client = aws.cognito_client()
    try:
        user = client.admin_get_user(UserPoolId=settings.user_pool_id, Username=username)
    except ClientError as exc:
        if client_error_code(exc) == "UserNotFoundException":
            raise NotFoundError(
                f"No account found with this {channel.label}. Please sign up first."
            ) from exc
        raise map_client_error(exc, RESEND_ERRORS, default=(500, "Failed to resend confirmation code")) from exc
    if user.get("UserStatus") == "CONFIRMED":
        raise ConflictError("This account is already verified. You can log in directly.")

    response = call_cognito(
        lambda: client.resend_confirmation_code(
            ClientId=settings.client_id,
            SecretHash=settings.secret_hash(username),
            Username=username,
        ),
        RESEND_ERRORS,
        default=(500, "Failed to resend confirmation code"),
    )
    delivery = response.get("CodeDeliveryDetails") or {}
    return success(
        {
            channel.body_field: username,
            "deliveryMedium": delivery.get("DeliveryMedium"),
            "destination": delivery.get("Destination"),
        },
        message="Confirmation code resent successfully",
    )


def attribute_verification(request: ApiRequest) -> Dict[str, Any]:
    body = request.json_body()
    access_token = _require(body, "accessToken", "accessToken is required")
    response = call_cognito(
        lambda: aws.cognito_client().get_user_attribute_verification_code(
            AccessToken=access_token, AttributeName="phone_number"
        ),
        ATTRIBUTE_ERRORS,
        default=(500, "Failed to send verification code"),
    )
    delivery = response.get("CodeDeliveryDetails") or {}
    return success(
        {"deliveryMedium": delivery.get("DeliveryMedium"), "destination": delivery.get("Destination")},
        message="Verification code sent successfully",
    )


def change_password(request: ApiRequest, channel: Channel) -> Dict[str, Any]:
    body = request.json_body()
    username = channel.username(body)
    old_password = _require(body, "oldPassword", "Current password is required")
    new_password = _require(body, "newPassword", "New password is required")

    settings = cognito_settings()
    result = _password_auth(settings, username, old_password, CHANGE_PASSWORD_ERRORS)
    call_cognito(
        lambda: aws.cognito_client().change_password(
            PreviousPassword=old_password,
            ProposedPassword=new_password,
            AccessToken=result["AccessToken"],
        ),
        CHANGE_PASSWORD_ERRORS,
        default=(500, "Failed to change password"),
    )
    return success(message="Password changed successfully")


def _channel_routes(channel: Channel) -> list:
    name = channel.name
    return [
        route("POST", f"/auth/{name}-signup", partial(signup, channel=channel), "Signup failed"),
        route("POST", f"/auth/confirm-{name}", partial(confirm_signup, channel=channel), "Confirmation failed"),
        route(
            "POST",
            f"/auth/forgot/{name}/Reset",
            partial(confirm_forgot_password, channel=channel),
            "Failed to reset password",
        ),
        route(
            "POST",
            f"/auth/forgot/{name}",
            partial(forgot_password, channel=channel),
            "Failed to initiate password reset",
        ),
        route("POST", f"/auth/{name}-login", partial(login, channel=channel), "Authentication failed"),
        route("POST", f"/auth/{name}-logout", partial(logout, channel=channel), "Logout failed"),
        route(
            "POST",
            f"/auth/reset/password-{name}",
            partial(admin_reset_password, channel=channel),
            "Failed to reset password",
        ),
        route(
            "POST",
            f"/auth/resend/{name}/confirmationCode",
            partial(resend_confirmation_code, channel=channel),
            "Failed to resend confirmation code",
        ),
        route(
            "POST",
            f"/auth/reset/password/{name}",
            partial(change_password, channel=channel),
            "Failed to change password",
        ),
    ]


ROUTES = [
    *_channel_routes(EMAIL),
    *_channel_routes(PHONE),
    route("POST", "/auth/refresh-token", refresh_token, "Token refresh failed"),
    route(
        "POST",
        "/auth/get/attribute/verification",
        attribute_verification,
        "Failed to send verification code",
    ),
]


def lambda_handler(event: Mapping[str, Any], _context: Any) -> Dict[str, Any]:
    """Lambda entrypoint for the authentication routes."""
    return dispatch(ROUTES, event)
