"""Reusable route dependencies: bearer authentication and request inputs
that do not come from a JSON body (path ids and list filters)."""
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Path, Request, Security, status
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from taskmanager.database import get_db
from taskmanager.models.user import User
from taskmanager.schemas.task import TaskQuery
from taskmanager.utils import validation as rules
from taskmanager.utils.auth import TokenError, decode_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a live, active user.

    Token claims are never trusted for identity on their own: the subject is
    looked up on every request, so deactivating or removing a user revokes
    all of their tokens immediately.
    """
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise _unauthorized("Not authorized, no token provided")
    try:
        payload = decode_token(credentials.credentials)
    except TokenError as e:
        raise _unauthorized(e.message)

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if user is None or not user.is_active:
        logger.info("rejected token for missing or inactive user %s", payload["sub"])
        raise _unauthorized("Not authorized, user not found or inactive")
    return user


def valid_task_id(id: str = Path(..., description="Task identifier")) -> str:
    check = rules.object_id(id)
    if not check.ok:
        raise RequestValidationError(
            [{"type": "invalid_id", "loc": ("path", "id"), "msg": "Invalid task ID", "input": id}]
        )
    return check.value


def task_query(request: Request) -> TaskQuery:
    """Validate the list filters, reporting every bad parameter at once."""
    try:
        return TaskQuery.model_validate(dict(request.query_params))
    except ValidationError as e:
        errors = []
        for err in e.errors(include_url=False):
            errors.append({**err, "loc": ("query", *err["loc"])})
        raise RequestValidationError(errors)
