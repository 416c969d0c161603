# Copyright (c) 2025 Anush Krishna
# Licensed under the MIT License. See LICENSE file in the project root.

"""SQLAlchemy ORM models for gate history.

Each gate run is stored as one ScanMetadata row with its observed counts and
thresholds; normalized findings hang off it as FindingRecord rows.

Classes
-------
Base : SQLAlchemy declarative base
ScanMetadata : One security gate execution
FindingRecord : One normalized finding attached to a gate execution

Examples
--------
>>> scan = ScanMetadata(gate='trivy', project='app', scan_timestamp='2025-01-01T00:00:00Z')
>>> scan.findings.append(FindingRecord(scanner='trivy', identifier='CVE-2024-0001'))
"""
from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class ScanMetadata(Base):
    """
    Metadata for each gate run.

    Attributes:
        id: Auto-incrementing primary key
        gate: Gate name (trivy, snyk, checkmarx, policy, image)
        project: CI project name
        commit_sha: Commit the pipeline ran for
        environment: Target environment slug, when known
        scan_timestamp: ISO format timestamp of the gate evaluation
        passed: Whether every blocking check passed
        observed: Metric name -> observed count
        thresholds: Metric name -> allowed maximum
    """
    __tablename__ = "scan_metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    gate = Column(String, nullable=False)
    project = Column(String, nullable=True)
    commit_sha = Column(String, nullable=True)
    environment = Column(String, nullable=True)
    scan_timestamp = Column(String, nullable=False)
    passed = Column(Boolean, nullable=False, default=True)
    observed = Column(JSON, nullable=True)
    thresholds = Column(JSON, nullable=True)

    findings = relationship(
        "FindingRecord", back_populates="scan", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_scan_metadata_gate_project", "gate", "project"),
    )


class FindingRecord(Base):
    __tablename__ = "finding"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    scan_id = Column(Integer, ForeignKey("scan_metadata.id"), nullable=False)
    scanner = Column(String, nullable=False)
    category = Column(String, nullable=True)
    identifier = Column(String, nullable=False)
    title = Column(Text, nullable=True)
    severity = Column(String, nullable=True)
    file_path = Column(String, nullable=True)
    package = Column(String, nullable=True)
    version = Column(String, nullable=True)

    scan = relationship("ScanMetadata", back_populates="findings")

    __table_args__ = (
        Index("ix_finding_severity", "severity"),
    )
