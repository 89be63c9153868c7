"""
Auth Service - accounts, JWT sessions and role administration
"""
import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

from onkur.config import settings
from onkur.db.database import transaction
from onkur.db.models import EmailVerificationToken, RevokedToken, User, UserRole
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.domain.roles import (
    PUBLIC_SIGNUP_ROLES, Role, determine_primary_role, has_any_role,
    sort_roles_by_priority,
)
from onkur.domain.snapshots import UserSnapshot
from onkur.errors import (
    AuthenticationError, ConflictError, ForbiddenError, NotFoundError, ValidationError,
)
from onkur.services.audit_service import audit_service
from onkur.services.notifications import cta

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8


def hash_verification_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Actor:
    """The authenticated caller as seen by the services"""
    id: int
    roles: List[Role] = field(default_factory=list)
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def primary_role(self) -> Role:
        return determine_primary_role(self.roles)

    def has_any(self, *roles: Role) -> bool:
        return has_any_role(self.roles, roles)

    @property
    def is_admin(self) -> bool:
        return self.has_any(Role.ADMIN)


def serialize_user(user: User) -> Dict[str, Any]:
    roles = sort_roles_by_priority(user.roles or [user.role])
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": determine_primary_role(roles, user.role).value,
        "roles": [role.value for role in roles],
        "is_active": user.is_active,
        "email_verified": user.email_verified_at is not None,
        "created_at": user.created_at,
    }


def actor_for(user: User) -> Actor:
    return Actor(
        id=user.id,
        roles=sort_roles_by_priority(user.roles or [user.role]),
        email=user.email,
        name=user.name,
    )


class AuthService:
    """Service for accounts and sessions"""

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        try:
            return pwd_context.verify(password, password_hash)
        except ValueError:
            return False

    def find_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()

    def set_roles(self, db: Session, user: User, roles: Iterable) -> List[Role]:
        """Replace the user's role rows and refresh the primary-role column"""
        ordered = sort_roles_by_priority(roles)
        if not ordered:
            raise ValidationError("At least one valid role is required")
        existing = {row.role: row for row in user.role_rows}
        user.role_rows = [existing.get(role.value) or UserRole(role=role.value) for role in ordered]
        user.role = determine_primary_role(ordered).value
        db.flush()
        return ordered

    def grant_role(self, db: Session, user: User, role: Role) -> List[Role]:
        return self.set_roles(db, user, list(user.roles) + [role])

    def create_access_token(self, user: User) -> Dict[str, Any]:
        roles = sort_roles_by_priority(user.roles or [user.role])
        expires_at = utcnow() + timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
        claims = {
            "sub": str(user.id),
            "roles": [role.value for role in roles],
            "role": determine_primary_role(roles, user.role).value,
            "name": user.name,
            "email": user.email,
            "jti": uuid.uuid4().hex,
            "iss": settings.JWT_ISSUER,
            "exp": expires_at,
        }
        token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
        return {"access_token": token, "token_type": "bearer", "expires_at": expires_at}

    def signup(
        self,
        db: Session,
        name: str,
        email: str,
        password: str,
        roles: Optional[Iterable[str]] = None
    ) -> Outcome:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or not email or not password:
            raise ValidationError("Name, email, and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        requested = [r for r in sort_roles_by_priority(roles or []) if r in PUBLIC_SIGNUP_ROLES]
        if not requested:
            requested = [Role.VOLUNTEER]

        with transaction(db):
            if self.find_by_email(db, email):
                raise ConflictError("Email is already registered")
            user = User(name=name, email=email, password_hash=self.hash_password(password))
            db.add(user)
            db.flush()
            self.set_roles(db, user, requested)
            audit_service.record(db, user.id, "auth.signup", "user", user.id, None, UserSnapshot.from_model(user))
            token, expires_at = self.issue_verification_token(db, user)

        db.refresh(user)
        logger.info(f"User {user.id} signed up with roles {[r.value for r in requested]}")
        return outcome(
            {
                "user": serialize_user(user),
                "requires_email_verification": True,
                "verification": {"expires_at": expires_at},
                "message": "Check your inbox to verify your email before logging in.",
            },
            self.verification_message(user, token, expires_at),
        )

    def issue_verification_token(self, db: Session, user: User) -> Tuple[str, datetime]:
        """Store a single-use token; only its hash is kept"""
        token = secrets.token_urlsafe(32)
        expires_at = utcnow() + timedelta(minutes=settings.EMAIL_VERIFICATION_TTL_MINUTES)
        db.add(EmailVerificationToken(
            user_id=user.id,
            token_hash=hash_verification_token(token),
            expires_at=expires_at,
        ))
        db.flush()
        return token, expires_at

    def verification_message(self, user: User, token: str, expires_at: datetime) -> EmailMessage:
        return EmailMessage(
            to=user.email,
            subject="Verify your email for Onkur",
            heading="Confirm your email address",
            body_lines=[
                f"Hi {user.name.split(' ')[0]},",
                "Confirm your email address to activate your Onkur account.",
                f"The link expires at {expires_at.strftime('%Y-%m-%d %H:%M')} UTC.",
            ],
            cta=cta("Verify email", f"/verify-email?token={token}"),
            preview_text="One click to activate your Onkur account.",
        )

    def verify_email(self, db: Session, token: str) -> Outcome:
        token = (token or "").strip()
        if not token:
            raise ValidationError("Verification token is required")

        now = utcnow()
        with transaction(db):
            record = (
                db.query(EmailVerificationToken)
                .filter(EmailVerificationToken.token_hash == hash_verification_token(token))
                .with_for_update()
                .first()
            )
            if not record:
                raise ValidationError("Invalid verification token")
            if record.used_at:
                raise ValidationError("This verification link has already been used")
            if record.expires_at < now:
                raise ValidationError("This verification link has expired")

            user = self.get_user(db, record.user_id)
            record.used_at = now
            already_verified = user.email_verified_at is not None
            if not already_verified:
                before = UserSnapshot.from_model(user)
                user.email_verified_at = now
                db.flush()
                audit_service.record(
                    db, user.id, "auth.email.verify", "user", user.id, before, UserSnapshot.from_model(user)
                )
            db.query(EmailVerificationToken).filter(
                EmailVerificationToken.user_id == user.id,
                EmailVerificationToken.id != record.id,
            ).delete(synchronize_session=False)

        if already_verified:
            return outcome({
                "user": serialize_user(user),
                "already_verified": True,
                "message": "Email already verified. You can log in now.",
            })

        logger.info(f"User {user.id} verified {user.email}")
        welcome = EmailMessage(
            to=user.email,
            subject="Welcome to Onkur",
            heading=f"Welcome, {user.name}!",
            body_lines=[
                "Your account is ready.",
                "Browse upcoming events and join the ones that matter to you.",
            ],
            cta=cta("Open Onkur", "/app"),
            preview_text="Your Onkur account is ready.",
        )
        return outcome(
            {
                "user": serialize_user(user),
                "already_verified": False,
                "message": "Your email has been verified. You can now log in.",
            },
            welcome,
        )

    def resend_verification(self, db: Session, email: str) -> Outcome:
        """Issue a fresh link; the reply is the same whether or not the account exists"""
        reply = {"message": "If that account is awaiting verification, a new link is on its way."}
        user = self.find_by_email(db, email or "")
        if not user or user.email_verified_at is not None or not user.is_active:
            return outcome(reply)

        with transaction(db):
            db.query(EmailVerificationToken).filter(
                EmailVerificationToken.user_id == user.id,
                EmailVerificationToken.used_at.is_(None),
            ).delete(synchronize_session=False)
            token, expires_at = self.issue_verification_token(db, user)

        logger.info(f"Verification link re-issued for user {user.id}")
        return outcome(reply, self.verification_message(user, token, expires_at))

    def login(self, db: Session, email: str, password: str) -> Dict[str, Any]:
        user = self.find_by_email(db, email or "")
        if not user or not self.verify_password(password or "", user.password_hash):
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")
        if user.email_verified_at is None:
            raise ForbiddenError("Please verify your email before logging in")
        logger.info(f"User {user.id} logged in")
        return {"user": serialize_user(user), **self.create_access_token(user)}

    def decode_token(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
                issuer=settings.JWT_ISSUER,
            )
        except JWTError as e:
            raise AuthenticationError("Invalid or expired token") from e

    def verify_token(self, db: Session, token: str) -> Actor:
        claims = self.decode_token(token)
        jti = claims.get("jti")
        if jti and db.query(RevokedToken).filter(RevokedToken.jti == jti).first():
            raise AuthenticationError("Token has been revoked")

        try:
            user_id = int(claims.get("sub"))
        except (TypeError, ValueError):
            raise AuthenticationError("Invalid token subject")

        user = db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            raise AuthenticationError("Account is not active")
        return actor_for(user)

    def logout(self, db: Session, token: str) -> None:
        claims = self.decode_token(token)
        jti = claims.get("jti")
        if not jti:
            return
        expires_at = (
            datetime.fromtimestamp(claims["exp"], timezone.utc).replace(tzinfo=None)
            if "exp" in claims else utcnow()
        )
        with transaction(db):
            if not db.query(RevokedToken).filter(RevokedToken.jti == jti).first():
                db.add(RevokedToken(jti=jti, expires_at=expires_at))
            db.query(RevokedToken).filter(RevokedToken.expires_at < utcnow()).delete(
                synchronize_session=False
            )
        logger.info(f"Token {jti} revoked")

    def get_user(self, db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def list_users(
        self,
        db: Session,
        search: Optional[str] = None,
        role: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        query = db.query(User)
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(
                func.lower(User.email).like(pattern) | func.lower(User.name).like(pattern)
            )
        if role:
            query = query.join(UserRole).filter(UserRole.role == role.strip().upper())
        users = query.order_by(User.created_at.desc(), User.id.desc()).offset(max(offset, 0)).limit(
            min(max(limit, 1), 200)
        ).all()
        return [serialize_user(user) for user in users]

    def assign_roles(self, db: Session, actor: Actor, user_id: int, roles: Iterable[str]) -> Outcome:
        with transaction(db):
            user = self.get_user(db, user_id)
            before = UserSnapshot.from_model(user)
            ordered = self.set_roles(db, user, roles)
            after = UserSnapshot.from_model(user)
            audit_service.record(db, actor.id, "admin.user.roles", "user", user.id, before, after)

        notice = EmailMessage(
            to=user.email,
            subject="Your Onkur roles were updated",
            heading="Your access has changed",
            body_lines=[
                f"An administrator updated your roles to: {', '.join(r.value for r in ordered)}.",
            ],
            cta=cta("Open dashboard", "/app"),
        )
        return outcome(serialize_user(user), notice)

    def set_user_active(self, db: Session, actor: Actor, user_id: int, is_active: bool) -> Dict[str, Any]:
        if actor.id == user_id and not is_active:
            raise ValidationError("Administrators cannot deactivate their own account")
        with transaction(db):
            user = self.get_user(db, user_id)
            before = UserSnapshot.from_model(user)
            user.is_active = bool(is_active)
            db.flush()
            action = "admin.user.activate" if is_active else "admin.user.deactivate"
            audit_service.record(
                db, actor.id, action, "user", user.id, before, UserSnapshot.from_model(user)
            )
        return serialize_user(user)

    def ensure_admin_account(self, db: Session) -> Optional[User]:
        """Create or promote the configured bootstrap administrator"""
        if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
            logger.info("Admin bootstrap skipped: ADMIN_EMAIL/ADMIN_PASSWORD not set")
            return None

        with transaction(db):
            user = self.find_by_email(db, settings.ADMIN_EMAIL)
            if user is None:
                user = User(
                    name=settings.ADMIN_NAME,
                    email=settings.ADMIN_EMAIL.strip().lower(),
                    password_hash=self.hash_password(settings.ADMIN_PASSWORD),
                    email_verified_at=utcnow(),
                )
                db.add(user)
                db.flush()
                logger.info(f"Bootstrap admin {user.email} created")
            if Role.ADMIN not in user.roles:
                self.grant_role(db, user, Role.ADMIN)
            user.is_active = True
        return user


# Singleton instance
auth_service = AuthService()
