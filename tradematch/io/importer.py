# tradematch/io/importer.py
"""Normalize-then-match pipeline and idempotent storage of matched trades."""

from typing import Any, List, Optional, Sequence, Tuple
from sqlmodel import Session, select

from tradematch.db.models import TradeRecord
from tradematch.domain.contract_specs import ContractSpecResolver
from tradematch.domain.matcher import match_fills
from tradematch.domain.models import MatchResult, Trade
from tradematch.io.normalizers import FillNormalizer
from tradematch.utils.logging import get_logger

logger = get_logger("importer")


def run_import(
    normalizer: FillNormalizer,
    source: Any,
    resolver: Optional[ContractSpecResolver] = None,
    **match_kwargs,
) -> MatchResult:
    """
    Normalize one export and match its fills.

    Rows the normalizer could not read are reported as invalid_fill problems
    ahead of the matcher's own problems.
    """
    fills, problems = normalizer.normalize(source)
    logger.info("Normalized fills", source=normalizer.name, fills=len(fills), skipped=len(problems))

    result = match_fills(fills, resolver, **match_kwargs)
    result.problems = problems + result.problems
    return result


class TradeImporter:
    """Handles idempotent import of matched trades."""

    @staticmethod
    def import_trades(
        session: Session,
        trades: Sequence[Trade],
    ) -> Tuple[int, int, List[str]]:
        """
        Store matched trades.

        Idempotent rules:
        - Skip if a trade with the same id already exists in the DB.
        - Skip duplicates within the same batch.

        Returns:
            (trades_processed, newly_inserted, warnings)
        """
        warnings: List[str] = []
        newly_inserted = 0

        ids = [t.id for t in trades]
        existing_ids = set()
        if ids:
            rows = session.exec(select(TradeRecord.id).where(TradeRecord.id.in_(ids))).all()
            # rows may come back as ["abc"] OR [("abc",)] depending on stack
            existing_ids = {r[0] if isinstance(r, tuple) else r for r in rows}

        seen_in_batch = set()

        for trade in trades:
            if trade.id in seen_in_batch:
                warnings.append(f"Skipped duplicate in batch: {trade.instrument} {trade.id}")
                continue
            seen_in_batch.add(trade.id)

            if trade.id in existing_ids:
                warnings.append(f"Skipped duplicate in DB: {trade.instrument} {trade.id}")
                continue

            if trade.held:
                warnings.append(f"Stored held trade without P&L: {trade.instrument} {trade.id}")

            session.add(TradeRecord.from_trade(trade))
            newly_inserted += 1
            existing_ids.add(trade.id)

        if newly_inserted:
            session.commit()

        logger.info("Imported trades", total=len(trades), inserted=newly_inserted, warnings=len(warnings))
        return len(trades), newly_inserted, warnings
