# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every stock change must be attributable. Uses bcrypt for password
hashing.

TWO KINDS OF ACCOUNTS:
- Depot accounts log in as "<depot id>@<DEPOT_EMAIL_DOMAIN>". The depot must
  exist and be active; the account is bound to it.
- Every other email is an admin login. The profile must have role admin.
  An admin whose status is not active is reactivated on a successful
  password check.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Depot, User
from ..models.auth import ROLE_ADMIN, ROLE_DEPOT, STATUS_ACTIVE, VALID_ROLES
from ..errors import ConflictError, NotFoundError, StockError, ValidationError
from labstock.time_utils import utcnow


MIN_PASSWORD_LENGTH = 6

INVALID_CREDENTIALS = "L'email ou le mot de passe est incorrect."


class AuthenticationError(StockError):
    """Login refused. Message is shown to the user as-is."""

    status_code = 401


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Le mot de passe doit contenir au moins {MIN_PASSWORD_LENGTH} caractères."
        )


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12, after the length check."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def depot_id_from_email(email: str) -> str | None:
    domain = re.escape(current_app.config.get("DEPOT_EMAIL_DOMAIN", "pasteur.tn"))
    match = re.match(rf"^(\d+)@{domain}$", email.strip(), re.IGNORECASE)
    return match.group(1) if match else None


def depot_email(depot_id: str) -> str:
    return f"{depot_id}@{current_app.config.get('DEPOT_EMAIL_DOMAIN', 'pasteur.tn')}"


def find_user_by_email(email: str) -> User | None:
    """Case-insensitive email lookup."""
    return User.query.filter(func.lower(User.email) == email.strip().lower()).first()


def new_user(
    email: str,
    password: str,
    *,
    first_name: str = "",
    last_name: str = "",
    service: str = "",
    phone: str = "",
    role: str = ROLE_ADMIN,
    status: str = STATUS_ACTIVE,
    depot_id: str | None = None,
) -> User:
    """
    Build (but do not add) a user with a bcrypt password hash.

    Raises ValidationError for a short password or unknown role and
    ConflictError when the email is already used.
    """
    validate_password_strength(password)
    email = (email or "").strip()
    if not email or "@" not in email:
        raise ValidationError("Adresse email invalide.")
    if role not in VALID_ROLES:
        raise ValidationError(f"Rôle invalide : {role}")
    if role == ROLE_DEPOT and not depot_id:
        raise ValidationError("Un compte dépôt doit être rattaché à un dépôt.")
    if find_user_by_email(email):
        raise ConflictError("Un compte existe déjà pour cet email.")

    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        service=service,
        phone=phone,
        role=role,
        status=status,
        depot_id=depot_id,
        password_hash=hash_password(password),
    )
    return user


def create_user(email: str, password: str, **profile) -> User:
    """new_user, saved."""
    user = new_user(email, password, **profile)
    db.session.add(user)
    db.session.commit()
    return user


def new_depot_account(depot: Depot, password: str) -> User:
    """Unsaved login account "<depot id>@<domain>" for a depot."""
    return new_user(
        depot_email(depot.id),
        password,
        first_name=depot.name,
        last_name="Utilisateur",
        service=depot.name,
        role=ROLE_DEPOT,
        depot_id=depot.id,
    )


def create_depot_account(depot: Depot, password: str) -> User:
    account = new_depot_account(depot, password)
    db.session.add(account)
    db.session.commit()
    return account


def authenticate(email: str, password: str) -> User:
    """
    Check credentials and account state; returns the User on success.

    Raises AuthenticationError with a user-facing message otherwise.
    """
    email = (email or "").strip()
    if not email or not password:
        raise AuthenticationError("Email et mot de passe requis.")

    depot_id = depot_id_from_email(email)
    if depot_id is not None:
        return _authenticate_depot(depot_id, email, password)
    return _authenticate_admin(email, password)


def _authenticate_depot(depot_id: str, email: str, password: str) -> User:
    user = find_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        current_app.logger.warning("Depot login failed for %s", email)
        raise AuthenticationError(INVALID_CREDENTIALS)

    depot = db.session.get(Depot, depot_id)
    if depot is None:
        raise AuthenticationError(
            f"Aucun dépôt avec l'ID '{depot_id}' n'a été trouvé. Contactez l'administrateur."
        )
    if not depot.active:
        raise AuthenticationError(
            "Ce compte de dépôt est actuellement inactif. Veuillez contacter un administrateur."
        )
    if user.role != ROLE_DEPOT or user.depot_id != depot.id:
        raise AuthenticationError("Ce compte n'est pas rattaché à ce dépôt.")
    if user.status != STATUS_ACTIVE:
        raise AuthenticationError(
            "Ce compte utilisateur est inactif. Veuillez contacter un administrateur."
        )

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def _authenticate_admin(email: str, password: str) -> User:
    user = find_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        current_app.logger.warning("Admin login failed for %s", email)
        raise AuthenticationError(INVALID_CREDENTIALS)

    if user.role != ROLE_ADMIN:
        raise AuthenticationError("Ce compte n'est pas configuré comme un compte administrateur.")

    if user.status != STATUS_ACTIVE:
        current_app.logger.info("Reactivating admin account %s on login", user.id)
        user.status = STATUS_ACTIVE

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def update_password(user_id: int, new_password: str) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("Utilisateur introuvable.")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    return user
