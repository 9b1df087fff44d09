import math

from splitstats.models.schemas.result import ConversionStats

# z-scores for two-sided confidence intervals
Z_95 = 1.96
Z_90 = 1.64


def conversion_stats(participants: int, conversions: int) -> ConversionStats:
    """
    Conversion rate and confidence intervals from raw counts.

    Standard error of a binomial proportion, normal approximation:
    se = sqrt(r * (1 - r) / n); the 95% interval is +- 1.96 * se and the 90%
    interval +- 1.64 * se. Without participants the intervals are None.
    """
    if participants <= 0:
        return ConversionStats(conversion_rate=0.0)

    rate = conversions / participants
    standard_error = math.sqrt(rate * (1 - rate) / participants)
    return ConversionStats(
        conversion_rate=rate,
        confidence_interval=Z_95 * standard_error,
        confidence_interval_90=Z_90 * standard_error,
    )
