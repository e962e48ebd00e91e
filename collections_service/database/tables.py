"""
SQLAlchemy table mappings for the relational store.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from collections_service.utils.clock import utc_now

Base = declarative_base()


class DebtStateRow(Base):
    __tablename__ = "debt_states"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_final = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)


class ManagementTypeRow(Base):
    __tablename__ = "management_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text)
    active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    color = Column(String(20))
    icon = Column(String(50))


class TransitionRuleRow(Base):
    __tablename__ = "transition_rules"

    id = Column(Integer, primary_key=True)
    management_type_id = Column(Integer, ForeignKey("management_types.id"), nullable=False, index=True)
    origin_state_id = Column(Integer, ForeignKey("debt_states.id"))
    destination_state_id = Column(Integer, ForeignKey("debt_states.id"))
    requires_authorization = Column(Boolean, nullable=False, default=False)
    ui_message = Column(Text)
    additional_validation = Column(JSON)
    priority = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False)
    active = Column(Boolean, nullable=False, default=True)


class DebtRow(Base):
    __tablename__ = "debts"

    id = Column(Integer, primary_key=True)
    persona_id = Column(Integer, nullable=False, index=True)
    current_state_id = Column(Integer, ForeignKey("debt_states.id"), nullable=False)
    assigned_manager_id = Column(Integer, ForeignKey("users.id"))
    total_debt = Column(Numeric(14, 2), nullable=False, default=0)
    capital_balance = Column(Numeric(14, 2), nullable=False, default=0)
    days_overdue = Column(Integer, nullable=False, default=0)
    days_in_management = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utc_now)


class FollowUpRow(Base):
    __tablename__ = "follow_ups"

    id = Column(Integer, primary_key=True)
    manager_id = Column(Integer, nullable=False)
    persona_id = Column(Integer, nullable=False, index=True)
    management_type_id = Column(Integer, ForeignKey("management_types.id"), nullable=False)
    observation = Column(Text)
    next_follow_up_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    debts = relationship(
        "FollowUpDebtRow",
        order_by="FollowUpDebtRow.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def debt_ids(self):
        return [link.debt_id for link in self.debts]


class FollowUpDebtRow(Base):
    __tablename__ = "follow_up_debts"

    follow_up_id = Column(Integer, ForeignKey("follow_ups.id"), primary_key=True)
    debt_id = Column(Integer, ForeignKey("debts.id"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)


class AuthorizationRequestRow(Base):
    __tablename__ = "authorization_requests"

    id = Column(Integer, primary_key=True)
    follow_up_id = Column(Integer, ForeignKey("follow_ups.id"))
    debt_id = Column(Integer, ForeignKey("debts.id"), nullable=False, index=True)
    origin_state_id = Column(Integer, ForeignKey("debt_states.id"), nullable=False)
    destination_state_id = Column(Integer, ForeignKey("debt_states.id"), nullable=False)
    requesting_manager_id = Column(Integer, nullable=False, index=True)
    assigned_supervisor_id = Column(Integer, index=True)
    status = Column(String(20), nullable=False, default="Pending", index=True)
    requested_at = Column(DateTime, nullable=False, default=utc_now)
    resolved_at = Column(DateTime)
    resolver_id = Column(Integer)
    requester_comment = Column(Text)
    supervisor_comment = Column(Text)
