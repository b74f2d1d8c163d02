"""Landed tip data from the Jito tip stream."""

from dataclasses import dataclass

LAMPORTS_PER_SOL = 1_000_000_000


def sol_to_lamports(sol: float) -> int:
    return round(sol * LAMPORTS_PER_SOL)


@dataclass
class TipInfo:
    """Percentiles of tips that landed recently.

    The stream reports SOL; every field here is lamports.
    """

    time: str
    p25: int
    p50: int
    p75: int
    p95: int
    p99: int
    ema_p50: int

    @classmethod
    def from_stream_message(cls, result: dict) -> "TipInfo":
        """Parse one entry of a tip stream message.

        Args:
            result: One object from the JSON array the tip stream sends

        Returns:
            TipInfo instance with lamport values
        """
        return cls(
            time=str(result.get("time", "")),
            p25=sol_to_lamports(result["landed_tips_25th_percentile"]),
            p50=sol_to_lamports(result["landed_tips_50th_percentile"]),
            p75=sol_to_lamports(result["landed_tips_75th_percentile"]),
            p95=sol_to_lamports(result["landed_tips_95th_percentile"]),
            p99=sol_to_lamports(result["landed_tips_99th_percentile"]),
            ema_p50=sol_to_lamports(result["ema_landed_tips_50th_percentile"]),
        )
