# tradematch/domain/metrics.py
"""Metrics and reporting calculations over matched trades."""

from typing import Dict, List, Sequence

import pandas as pd
import pytz

from tradematch import config
from tradematch.domain.models import Trade

TRADE_COLUMNS = [
    "id", "account_id", "instrument", "side", "quantity", "entry_price", "close_price",
    "entry_date", "close_date", "pnl", "commission", "net_pnl", "time_in_position", "held",
]


class MetricsCalculator:
    """Calculate trading metrics and equity curve from closed trades."""

    @staticmethod
    def trades_frame(trades: Sequence[Trade]) -> pd.DataFrame:
        """One row per trade."""
        rows = [
            {
                "id": t.id,
                "account_id": t.account_id,
                "instrument": t.instrument,
                "side": t.side.value,
                "quantity": t.quantity,
                "entry_price": t.entry_price,
                "close_price": t.close_price,
                "entry_date": t.entry_date,
                "close_date": t.close_date,
                "pnl": t.pnl,
                "commission": t.commission,
                "net_pnl": t.net_pnl,
                "time_in_position": t.time_in_position,
                "held": t.held,
            }
            for t in trades
        ]
        return pd.DataFrame(rows, columns=TRADE_COLUMNS)

    @staticmethod
    def _priced(trades: Sequence[Trade]) -> List[Trade]:
        # Held trades have no P&L yet
        return [t for t in trades if not t.held]

    @staticmethod
    def get_overview_stats(trades: Sequence[Trade], use_gross: bool = False) -> Dict:
        """Get overall trading statistics."""
        priced = MetricsCalculator._priced(trades)

        if not priced:
            return {
                "total_trades": 0,
                "held_trades": len(trades),
                "winning_trades": 0,
                "losing_trades": 0,
                "win_rate": 0.0,
                "total_gross": 0.0,
                "total_commissions": 0.0,
                "total_net": 0.0,
                "avg_win": 0.0,
                "avg_loss": 0.0,
                "profit_factor": 0.0,
            }

        def result(t: Trade) -> float:
            return t.pnl if use_gross else t.net_pnl

        wins = [t for t in priced if result(t) > 0]
        losses = [t for t in priced if result(t) < 0]

        total_wins = sum(result(t) for t in wins)
        total_losses = sum(abs(result(t)) for t in losses)

        return {
            "total_trades": len(priced),
            "held_trades": len(trades) - len(priced),
            "winning_trades": len(wins),
            "losing_trades": len(losses),
            "win_rate": len(wins) / len(priced),
            "total_gross": round(sum(t.pnl for t in priced), 2),
            "total_commissions": sum(t.commission for t in priced),
            "total_net": round(sum(t.net_pnl for t in priced), 2),
            "avg_win": sum(result(t) for t in wins) / len(wins) if wins else 0.0,
            "avg_loss": sum(result(t) for t in losses) / len(losses) if losses else 0.0,
            "profit_factor": total_wins / total_losses if total_losses > 0 else 0.0,
        }

    @staticmethod
    def get_instrument_stats(trades: Sequence[Trade]) -> pd.DataFrame:
        """Get performance by instrument."""
        df = MetricsCalculator.trades_frame(MetricsCalculator._priced(trades))
        if df.empty:
            return pd.DataFrame(
                columns=["instrument", "count", "wins", "win_rate", "quantity", "gross_pnl", "commissions", "net_pnl"]
            )

        df["is_win"] = (df["net_pnl"] > 0).astype(int)
        out = (
            df.groupby("instrument", as_index=False)
            .agg(
                count=("id", "count"),
                wins=("is_win", "sum"),
                quantity=("quantity", "sum"),
                gross_pnl=("pnl", "sum"),
                commissions=("commission", "sum"),
                net_pnl=("net_pnl", "sum"),
            )
            .sort_values("instrument")
            .reset_index(drop=True)
        )
        out["win_rate"] = out["wins"] / out["count"]
        return out[["instrument", "count", "wins", "win_rate", "quantity", "gross_pnl", "commissions", "net_pnl"]]

    @staticmethod
    def get_equity_curve(
        trades: Sequence[Trade],
        report_timezone: str = None,
        use_gross: bool = False,
    ) -> pd.DataFrame:
        """
        Build equity curve from trades grouped by close day.

        Returns DataFrame with columns: date, daily_pnl, cumulative_pnl, drawdown, daily_gross
        """
        tz = pytz.timezone(report_timezone or config.REPORT_TIMEZONE)
        priced = MetricsCalculator._priced(trades)

        if not priced:
            return pd.DataFrame(
                columns=["date", "daily_pnl", "cumulative_pnl", "drawdown", "daily_gross"]
            )

        by_day: Dict[str, List[Trade]] = {}
        for t in priced:
            close = t.close_date if t.close_date.tzinfo else pytz.UTC.localize(t.close_date)
            day_key = close.astimezone(tz).strftime("%Y-%m-%d")
            by_day.setdefault(day_key, []).append(t)

        rows = []
        cumulative = 0.0
        peak = 0.0

        for day_date in sorted(by_day.keys()):
            items = by_day[day_date]

            daily_gross = sum(t.pnl for t in items)
            daily_pnl = daily_gross if use_gross else sum(t.net_pnl for t in items)

            cumulative += daily_pnl
            peak = max(peak, cumulative)
            drawdown = cumulative - peak if peak > 0 else 0.0

            rows.append(
                {
                    "date": day_date,
                    "daily_pnl": daily_pnl,
                    "daily_gross": daily_gross,
                    "cumulative_pnl": cumulative,
                    "drawdown": drawdown,
                }
            )

        return pd.DataFrame(rows)
