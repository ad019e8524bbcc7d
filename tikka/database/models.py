from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, BigInteger, DateTime,
    ForeignKey, Enum, Boolean, Text, JSON, TypeDecorator
)
from sqlalchemy.orm import declarative_base, relationship

from tikka.core.types import RaffleStatus, RandomnessSource

Base = declarative_base()


class WideInteger(TypeDecorator):
    """
    Lossless storage for u64 / i128 quantities

    Stored as decimal text: neither SQLite nor PostgreSQL BIGINT can hold
    the full 128-bit range.
    """

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class RaffleRecord(Base):
    __tablename__ = "raffles"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    creator = Column(String(128), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    end_time = Column(WideInteger, nullable=False, default=0)  # 0 = no time limit
    max_tickets = Column(BigInteger, nullable=False)
    allow_multiple = Column(Boolean, nullable=False, default=False)
    ticket_price = Column(WideInteger, nullable=False)
    payment_token = Column(String(128), nullable=False)
    prize_amount = Column(WideInteger, nullable=False)
    randomness_source = Column(Enum(RandomnessSource, values_callable=lambda x: [e.value for e in x], name='randomnesssource'), nullable=False)
    protocol_fee_bp = Column(Integer, nullable=False, default=0)

    tickets_sold = Column(BigInteger, nullable=False, default=0)
    status = Column(Enum(RaffleStatus, values_callable=lambda x: [e.value for e in x], name='rafflestatus'), nullable=False, default=RaffleStatus.PROPOSED)
    prize_deposited = Column(Boolean, nullable=False, default=False)
    prize_claimed = Column(Boolean, nullable=False, default=False)
    prize_refunded = Column(Boolean, nullable=False, default=False)
    tickets_refunded = Column(BigInteger, nullable=False, default=0)
    paid_out = Column(WideInteger, nullable=False, default=0)

    winner = Column(String(128), nullable=True)
    winning_ticket_id = Column(BigInteger, nullable=True)
    draw_sequence = Column(WideInteger, nullable=True)
    oracle_address = Column(String(128), nullable=True)
    pending_seed = Column(JSON, nullable=True)  # {oracle, requested_at, request_sequence}
    random_seed = Column(WideInteger, nullable=True)

    created_at = Column(WideInteger, nullable=False, default=0)  # Ledger timestamp
    finalized_at = Column(WideInteger, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tickets = relationship("TicketRecord", back_populates="raffle", order_by="TicketRecord.ticket_id")


class TicketRecord(Base):
    __tablename__ = "tickets"

    raffle_id = Column(BigInteger, ForeignKey("raffles.id"), primary_key=True)
    ticket_id = Column(BigInteger, primary_key=True)  # 1-based, contiguous per raffle
    buyer = Column(String(128), nullable=False, index=True)
    purchase_time = Column(WideInteger, nullable=False, default=0)
    refunded = Column(Boolean, nullable=False, default=False)

    # Relationships
    raffle = relationship("RaffleRecord", back_populates="tickets")


class EventRecord(Base):
    """Append-only event log consumed by indexers"""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace = Column(String(32), nullable=False)
    name = Column(String(64), nullable=False, index=True)
    raffle_id = Column(BigInteger, nullable=True, index=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class TokenBalance(Base):
    __tablename__ = "token_balances"

    token = Column(String(128), primary_key=True)
    account = Column(String(128), primary_key=True)
    balance = Column(WideInteger, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ContractConfigRecord(Base):
    __tablename__ = "contract_config"

    id = Column(Integer, primary_key=True, default=1)
    admin = Column(String(128), nullable=False)
    pending_admin = Column(String(128), nullable=True)
    protocol_fee_bp = Column(Integer, nullable=False, default=0)
    treasury = Column(String(128), nullable=True)
    oracle_address = Column(String(128), nullable=True)
    paused = Column(Boolean, nullable=False, default=False)
    accrued_fees = Column(JSON, nullable=False, default=dict)  # token -> amount (as text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ContractConfig(admin={self.admin}, fee_bp={self.protocol_fee_bp}, paused={self.paused})>"


class LedgerSequence(Base):
    """Single-row counter behind the ledger sequence number"""
    __tablename__ = "ledger_sequence"

    id = Column(Integer, primary_key=True, default=1)
    value = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
