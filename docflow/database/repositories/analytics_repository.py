from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docflow.database.connection import get_connection
from docflow.database.models import ProcessingAnalyticsRecord, RateStat, TypeFailureRate


class AnalyticsRepository:
    """Writes chain outcomes and serves read-only aggregate queries."""

    def record(self, outcome: ProcessingAnalyticsRecord) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO processing_analytics
                    (file_id, user_id, chain_id, status, document_type,
                     classification_confidence, classification_reasoning,
                     extraction_confidence, validation_warnings, failure_category,
                     error_message, is_retryable, duration_ms, model_used)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    outcome.file_id,
                    outcome.user_id,
                    outcome.chain_id,
                    outcome.status,
                    outcome.document_type,
                    outcome.classification_confidence,
                    outcome.classification_reasoning,
                    outcome.extraction_confidence,
                    Jsonb(list(outcome.validation_warnings)),
                    outcome.failure_category,
                    outcome.error_message,
                    outcome.is_retryable,
                    outcome.duration_ms,
                    outcome.model_used,
                ),
            )
            conn.commit()

    def unknown_type_frequency(self, days: int = 30) -> RateStat:
        """Share of classified chains that came back as 'unknown'."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT COUNT(*),
                           COUNT(*) FILTER (WHERE document_type = 'unknown')
                    FROM processing_analytics
                    WHERE document_type IS NOT NULL
                      AND created_at >= NOW() - %s * INTERVAL '1 day'
                    """,
                    (days,),
                )
                row = cur.fetchone()
        return RateStat(total=int(row[0]), matching=int(row[1])) if row else RateStat(0, 0)

    def low_confidence_rate(self, threshold: float = 0.7, days: int = 30) -> RateStat:
        """Share of classifications whose confidence fell below the threshold."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT COUNT(*),
                           COUNT(*) FILTER (WHERE classification_confidence < %s)
                    FROM processing_analytics
                    WHERE classification_confidence IS NOT NULL
                      AND created_at >= NOW() - %s * INTERVAL '1 day'
                    """,
                    (threshold, days),
                )
                row = cur.fetchone()
        return RateStat(total=int(row[0]), matching=int(row[1])) if row else RateStat(0, 0)

    def validation_failure_rate_by_type(self, days: int = 30) -> list[TypeFailureRate]:
        """Per document type, how many chains failed extraction validation."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_type,
                           COUNT(*) AS total,
                           COUNT(*) FILTER (
                               WHERE failure_category = 'extraction_validation_failed'
                           ) AS failures
                    FROM processing_analytics
                    WHERE document_type IS NOT NULL
                      AND created_at >= NOW() - %s * INTERVAL '1 day'
                    GROUP BY document_type
                    ORDER BY failures DESC, document_type
                    """,
                    (days,),
                )
                rows = cur.fetchall()
        return [
            TypeFailureRate(
                document_type=row["document_type"],
                total=int(row["total"]),
                failures=int(row["failures"]),
            )
            for row in rows
        ]

    def type_distribution(self, days: int = 30) -> dict[str, int]:
        return self._count_by("document_type", days)

    def failure_distribution(self, days: int = 30) -> dict[str, int]:
        return self._count_by("failure_category", days)

    @staticmethod
    def _count_by(column: str, days: int) -> dict[str, int]:
        if column not in {"document_type", "failure_category"}:
            raise ValueError(f"Unsupported analytics column: {column}")
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {column}, COUNT(*)
                    FROM processing_analytics
                    WHERE {column} IS NOT NULL
                      AND created_at >= NOW() - %s * INTERVAL '1 day'
                    GROUP BY {column}
                    ORDER BY COUNT(*) DESC
                    """,
                    (days,),
                )
                rows = cur.fetchall()
        return {str(row[0]): int(row[1]) for row in rows}
