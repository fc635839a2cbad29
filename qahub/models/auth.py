"""
Auth Models: tenants, memberships, users, RBAC, password lifecycle, PATs.

Tables:
    tenants, tenant_users, users,
    roles, permissions, role_permissions, user_roles, user_permissions,
    password_resets, password_histories, personal_access_tokens
"""

from qahub.models import db
from qahub.models.base import iso, utcnow


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    plan = db.Column(db.String(50), default="free")
    is_active = db.Column(db.Boolean, default=True)
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    memberships = db.relationship(
        "TenantUser", back_populates="tenant", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "plan": self.plan,
            "is_active": self.is_active,
            "settings": self.settings or {},
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class TenantUser(db.Model):
    """Membership of a user in a tenant; the earliest one is the primary tenant."""

    __tablename__ = "tenant_users"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "user_id", name="uq_tenant_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(50), default="member")
    joined_at = db.Column(db.DateTime, default=utcnow)

    tenant = db.relationship("Tenant", back_populates="memberships")
    user = db.relationship("User", back_populates="memberships")

    def to_dict(self):
        return {
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "role": self.role,
            "joined_at": iso(self.joined_at),
            "tenant": self.tenant.to_dict() if self.tenant else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    job_role = db.Column(db.String(100))
    avatar = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    preferences = db.Column(db.JSON, default=dict)
    email_verified_at = db.Column(db.DateTime)
    last_login_at = db.Column(db.DateTime)
    password_changed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    memberships = db.relationship(
        "TenantUser", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )
    user_roles = db.relationship(
        "UserRole", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )
    user_permissions = db.relationship(
        "UserPermission", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_brief(self):
        """Actor reference embedded in other resources."""
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_dict(self, include_roles=False):
        d = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "job_role": self.job_role,
            "avatar": self.avatar,
            "is_active": self.is_active,
            "email_verified_at": iso(self.email_verified_at),
            "last_login_at": iso(self.last_login_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_roles:
            d["roles"] = self.role_names
        return d

    @property
    def role_names(self):
        """List of role names for this user."""
        return [ur.role.name for ur in self.user_roles.all()]


def brief(user):
    """``user.to_brief()`` tolerant of a missing relationship."""
    return user.to_brief() if user else None


# ═══════════════════════════════════════════════════════════════
# 3. ROLES & PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"
    __table_args__ = (
        db.UniqueConstraint("name", "guard_name", name="uq_role_name_guard"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    guard_name = db.Column(db.String(50), nullable=False, default="api")
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="dynamic", cascade="all, delete-orphan",
    )
    user_roles = db.relationship(
        "UserRole", back_populates="role", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "name": self.name,
            "guard_name": self.guard_name,
            "description": self.description,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_permissions:
            d["permissions"] = [rp.permission.to_dict() for rp in self.role_permissions.all()]
        return d


class Permission(db.Model):
    __tablename__ = "permissions"
    __table_args__ = (
        db.UniqueConstraint("name", "guard_name", name="uq_permission_name_guard"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    guard_name = db.Column(db.String(50), nullable=False, default="api")
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    role_permissions = db.relationship(
        "RolePermission", back_populates="permission", lazy="dynamic", cascade="all, delete-orphan",
    )
    user_permissions = db.relationship(
        "UserPermission", back_populates="permission", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "guard_name": self.guard_name,
            "description": self.description,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }


class RolePermission(db.Model):
    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)

    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions")


class UserRole(db.Model):
    __tablename__ = "user_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    assigned_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship("User", back_populates="user_roles")
    role = db.relationship("Role", back_populates="user_roles")


class UserPermission(db.Model):
    __tablename__ = "user_permissions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "permission_id", name="uq_user_permission"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)

    user = db.relationship("User", back_populates="user_permissions")
    permission = db.relationship("Permission", back_populates="user_permissions")


# ═══════════════════════════════════════════════════════════════
# 4. PASSWORD LIFECYCLE
# ═══════════════════════════════════════════════════════════════
class PasswordReset(db.Model):
    __tablename__ = "password_resets"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    token = db.Column(db.String(255), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)


class PasswordHistory(db.Model):
    __tablename__ = "password_histories"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)


# ═══════════════════════════════════════════════════════════════
# 5. PERSONAL ACCESS TOKENS
# ═══════════════════════════════════════════════════════════════
class PersonalAccessToken(db.Model):
    """Long-lived API token. Only the SHA-256 hash of the plain token is stored."""

    __tablename__ = "personal_access_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    token = db.Column(db.String(64), unique=True, nullable=False)
    abilities = db.Column(db.JSON, default=list)
    last_used_at = db.Column(db.DateTime)
    last_used_ip = db.Column(db.String(45))
    last_used_user_agent = db.Column(db.String(500))
    expires_at = db.Column(db.DateTime)
    revoked_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship("User")

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at <= utcnow()

    @property
    def is_revoked(self):
        return self.revoked_at is not None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "abilities": self.abilities or [],
            "last_used_at": iso(self.last_used_at),
            "last_used_ip": self.last_used_ip,
            "last_used_user_agent": self.last_used_user_agent,
            "expires_at": iso(self.expires_at),
            "revoked_at": iso(self.revoked_at),
            "is_expired": self.is_expired,
            "is_revoked": self.is_revoked,
            "created_at": iso(self.created_at),
        }
