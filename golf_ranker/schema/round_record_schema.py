#!/usr/bin/env python3
"""
Round Record Schema Definition

Pandera schemas for the tabular inputs of the ranking engine: per-round
player records and the per-player approach snapshot. Validation coerces
types and tolerates extra columns, so any metric a source provides can
flow through to aggregation.
"""

import pandera as pa
from pandera.typing import Series
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class RoundRecordSchema(pa.DataFrameModel):
    """
    Pandera schema for raw round records.

    One row per player per competitive round. Only the identity columns are
    required; metric columns are optional and may contain nulls.
    """

    # Identity
    dg_id: Series[int] = pa.Field(
        description="Player id",
        ge=0
    )

    player_name: Optional[Series[str]] = pa.Field(
        description="Player display name",
        nullable=True
    )

    event_id: Series[str] = pa.Field(
        description="Event id (used for similar/putting course roles)"
    )

    round_num: Optional[Series[float]] = pa.Field(
        description="Round number within the event",
        nullable=True,
        ge=1,
        le=5
    )

    event_completed: Optional[Series[str]] = pa.Field(
        description="Event completion date",
        nullable=True
    )

    year: Optional[Series[float]] = pa.Field(
        description="Season",
        nullable=True
    )

    fin_text: Optional[Series[str]] = pa.Field(
        description="Finish text (1, T5, CUT, WD)",
        nullable=True
    )

    # Strokes gained
    sg_total: Optional[Series[float]] = pa.Field(description="SG total", nullable=True)
    sg_t2g: Optional[Series[float]] = pa.Field(description="SG tee to green", nullable=True)
    sg_app: Optional[Series[float]] = pa.Field(description="SG approach", nullable=True)
    sg_arg: Optional[Series[float]] = pa.Field(description="SG around the green", nullable=True)
    sg_ott: Optional[Series[float]] = pa.Field(description="SG off the tee", nullable=True)
    sg_putt: Optional[Series[float]] = pa.Field(description="SG putting", nullable=True)

    # Traditional stats
    driving_dist: Optional[Series[float]] = pa.Field(description="Driving distance (yards)", nullable=True, ge=0)
    driving_acc: Optional[Series[float]] = pa.Field(description="Driving accuracy (fraction or percent)", nullable=True, ge=0, le=100)
    gir: Optional[Series[float]] = pa.Field(description="Greens in regulation (fraction or percent)", nullable=True, ge=0, le=100)
    scrambling: Optional[Series[float]] = pa.Field(description="Scrambling (fraction or percent)", nullable=True, ge=0, le=100)
    prox_fw: Optional[Series[float]] = pa.Field(description="Proximity from fairway (feet)", nullable=True, ge=0)
    prox_rgh: Optional[Series[float]] = pa.Field(description="Proximity from rough (feet)", nullable=True, ge=0)
    great_shots: Optional[Series[float]] = pa.Field(description="Great shots per round", nullable=True, ge=0)
    poor_shots: Optional[Series[float]] = pa.Field(description="Poor shots per round", nullable=True, ge=0)
    score: Optional[Series[float]] = pa.Field(description="Round score", nullable=True, ge=0)
    birdies: Optional[Series[float]] = pa.Field(description="Birdies in the round", nullable=True, ge=0)
    eagles_or_better: Optional[Series[float]] = pa.Field(description="Eagles or better in the round", nullable=True, ge=0)

    class Config:
        """Pandera configuration."""
        coerce = True
        strict = False


class ApproachSnapshotSchema(pa.DataFrameModel):
    """Pandera schema for the per-player approach snapshot (one row per player)."""

    dg_id: Series[int] = pa.Field(
        description="Player id",
        ge=0,
        unique=True
    )

    player_name: Optional[Series[str]] = pa.Field(
        description="Player display name",
        nullable=True
    )

    class Config:
        """Pandera configuration."""
        coerce = True
        strict = False


def validate_dataframe(df, schema=RoundRecordSchema):
    """
    Validate a DataFrame against a schema.

    Args:
        df: pandas DataFrame to validate
        schema: Pandera schema class (default: RoundRecordSchema)

    Returns:
        Validated (coerced) DataFrame

    Raises:
        pa.errors.SchemaError: If validation fails
    """
    try:
        return schema.validate(df)
    except (pa.errors.SchemaError, pa.errors.SchemaErrors) as e:
        logger.error(f"Schema validation failed for {schema.__name__}: {e}")
        logger.error(f"DataFrame shape: {df.shape}")
        logger.error(f"DataFrame columns: {list(df.columns)}")
        if getattr(e, 'failure_cases', None) is not None:
            logger.error(f"Failure cases:\n{e.failure_cases}")
        raise


def validate_round_records(df):
    """Validate raw round records."""
    return validate_dataframe(df, RoundRecordSchema)


def validate_approach_snapshot(df):
    """Validate an approach snapshot table."""
    return validate_dataframe(df, ApproachSnapshotSchema)


def get_schema_summary(schema=RoundRecordSchema) -> dict:
    """
    Get a summary of a schema definition.

    Returns:
        Dictionary with schema information
    """
    columns = schema.to_schema().columns
    fields = {
        name: {
            "type": str(column.dtype),
            "description": column.description,
            "required": column.required,
            "nullable": column.nullable,
        }
        for name, column in columns.items()
    }
    return {
        "schema_name": schema.__name__,
        "total_fields": len(fields),
        "required_fields": sum(1 for f in fields.values() if f["required"]),
        "optional_fields": sum(1 for f in fields.values() if not f["required"]),
        "fields": fields,
    }
