# src/dealcore/adapters/sql_repo.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, Index
from sqlmodel import JSON, Column, Field, Session, SQLModel, create_engine, select

from dealcore.adapters.config import config
from dealcore.domain.scoring import (
    DealScore,
    ScoringConfiguration,
    ScoringCriteria,
    ScoringWeights,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db_ts(ts: datetime) -> datetime:
    # always aware UTC on the way in
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _from_db_ts(ts: datetime) -> datetime:
    # sqlite hands back naive values
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


# ---------- Deal score history (append-only) ----------

class DealScoreRow(SQLModel, table=True):
    __tablename__ = "deal_scores"
    __table_args__ = (
        Index("ix_deal_scores_deal_calculated", "deal_id", "calculated_at"),
        Index("ix_deal_scores_deal_version", "deal_id", "version"),
    )

    seq: int | None = Field(default=None, primary_key=True)
    id: str = Field(default_factory=lambda: str(uuid4()), index=True, unique=True)
    deal_id: str
    overall_score: float
    version: int = Field(default=1)
    calculated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    criteria: dict[str, Any] = Field(sa_column=Column(JSON))
    weights: dict[str, Any] = Field(sa_column=Column(JSON))

    def to_domain(self) -> DealScore:
        return DealScore(
            id=self.id,
            deal_id=self.deal_id,
            overall_score=float(self.overall_score),
            criteria=ScoringCriteria(**self.criteria),
            weights=ScoringWeights(**self.weights),
            version=int(self.version),
            calculated_at=_from_db_ts(self.calculated_at),
        )


class SqlScoreRepository:
    def __init__(self, uri: str | None = None):
        self.engine = create_engine(uri or config.DB_URI, echo=False)
        SQLModel.metadata.create_all(self.engine)

    def save_score(self, score: DealScore) -> DealScore:
        row = DealScoreRow(
            id=score.id,
            deal_id=score.deal_id,
            overall_score=score.overall_score,
            version=score.version,
            calculated_at=_to_db_ts(score.calculated_at),
            criteria=score.criteria.as_dict(),
            weights=score.weights.as_dict(),
        )
        with Session(self.engine) as session:
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.to_domain()

    def find_latest_score(self, deal_id: str) -> DealScore | None:
        history = self.find_score_history(deal_id, limit=1)
        return history[0] if history else None

    def find_score_history(self, deal_id: str, limit: int = 50) -> list[DealScore]:
        with Session(self.engine) as session:
            stmt = (
                select(DealScoreRow)
                .where(DealScoreRow.deal_id == deal_id)
                .order_by(DealScoreRow.calculated_at.desc(), DealScoreRow.seq.desc())
                .limit(limit)
            )
            return [r.to_domain() for r in session.exec(stmt)]


# ---------- Scoring configuration (one default per organization) ----------

class ScoringConfigurationRow(SQLModel, table=True):
    __tablename__ = "scoring_configurations"
    __table_args__ = (
        Index("ix_scoring_configurations_org_default", "organization_id", "is_default"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    organization_id: str
    is_default: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    weights: dict[str, Any] = Field(sa_column=Column(JSON))

    def to_domain(self) -> ScoringConfiguration:
        return ScoringConfiguration(
            id=self.id,
            organization_id=self.organization_id,
            weights=ScoringWeights(**self.weights),
            is_default=bool(self.is_default),
            created_at=_from_db_ts(self.created_at),
            updated_at=_from_db_ts(self.updated_at),
        )


class SqlScoringConfigRepository:
    def __init__(self, uri: str | None = None):
        self.engine = create_engine(uri or config.DB_URI, echo=False)
        SQLModel.metadata.create_all(self.engine)

    def _find_default_row(self, session: Session, organization_id: str) -> ScoringConfigurationRow | None:
        stmt = select(ScoringConfigurationRow).where(
            ScoringConfigurationRow.organization_id == organization_id,
            ScoringConfigurationRow.is_default == True,  # noqa: E712
        )
        return session.exec(stmt).first()

    def find_default_configuration(self, organization_id: str) -> ScoringConfiguration | None:
        with Session(self.engine) as session:
            row = self._find_default_row(session, organization_id)
            return row.to_domain() if row else None

    def upsert_configuration(
        self,
        organization_id: str,
        weights: ScoringWeights,
    ) -> ScoringConfiguration:
        with Session(self.engine) as session:
            row = self._find_default_row(session, organization_id)
            if row:
                row.weights = weights.as_dict()
                row.updated_at = _utcnow()
            else:
                row = ScoringConfigurationRow(
                    organization_id=organization_id,
                    is_default=True,
                    weights=weights.as_dict(),
                )
            session.add(row)
            session.commit()
            session.refresh(row)
            return row.to_domain()
