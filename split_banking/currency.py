"""
Currency Conversion Module

Holds the exchange rates loaded from the command log and derives every
indirect rate with an all-pairs closure, so any two known currencies can be
compared. All cross-currency checks in the split-payment protocol go
through ExchangeRateIndex.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class ExchangeRate:
    """Direct rate: 1 unit of from_currency buys `rate` units of to_currency"""
    from_currency: str
    to_currency: str
    rate: float

    def __post_init__(self):
        if not isinstance(self.rate, float):
            object.__setattr__(self, 'rate', float(self.rate))
        if self.rate <= 0:
            raise ValueError(
                f"Exchange rate {self.from_currency} -> {self.to_currency} must be positive"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExchangeRate':
        """Create from a command-log record ({"from", "to", "rate"})"""
        return cls(
            from_currency=data['from'],
            to_currency=data['to'],
            rate=data['rate']
        )


class ExchangeRateIndex:
    """
    All-pairs exchange rate matrix.

    Direct rates and their reciprocals seed the matrix; a Floyd-Warshall style
    pass then keeps, for every pair, the largest product over any path. The
    index is immutable once built.
    """

    def __init__(self, rates: Optional[Iterable[ExchangeRate]] = None):
        self._symbols: List[str] = []
        self._positions: Dict[str, int] = {}
        self._matrix: List[List[float]] = []
        self._built = False
        if rates is not None:
            self.build(rates)

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> 'ExchangeRateIndex':
        """Build an index straight from command-log exchange rate records"""
        return cls(ExchangeRate.from_dict(record) for record in records)

    @property
    def symbols(self) -> List[str]:
        """Known currencies in index order"""
        return list(self._symbols)

    def build(self, rates: Iterable[ExchangeRate]) -> None:
        """
        Build the matrix from the full rate list.

        Args:
            rates: Direct exchange rates

        Raises:
            ValueError: If the index was already built
        """
        if self._built:
            raise ValueError("Exchange rate index is already built")

        rates = list(rates)
        for rate in rates:
            for symbol in (rate.from_currency, rate.to_currency):
                if symbol not in self._positions:
                    self._positions[symbol] = len(self._symbols)
                    self._symbols.append(symbol)

        size = len(self._symbols)
        matrix = [[0.0] * size for _ in range(size)]

        for rate in rates:
            i = self._positions[rate.from_currency]
            j = self._positions[rate.to_currency]
            matrix[i][j] = rate.rate
            matrix[j][i] = 1 / rate.rate

        for i in range(size):
            matrix[i][i] = 1.0

        # Maximising closure: unknown pairs start at 0 and are filled by the
        # best product through any intermediate currency.
        for k in range(size):
            for i in range(size):
                for j in range(size):
                    via = matrix[i][k] * matrix[k][j]
                    if matrix[i][j] < via:
                        matrix[i][j] = via

        self._matrix = matrix
        self._built = True

    def knows(self, currency: str) -> bool:
        """Check whether a currency took part in build()"""
        return currency in self._positions

    def rate(self, from_currency: str, to_currency: str) -> float:
        """
        Get the conversion rate between two currencies.

        Raises:
            ValueError: If either currency was never seen by build()
        """
        if from_currency == to_currency:
            return 1.0

        try:
            i = self._positions[from_currency]
            j = self._positions[to_currency]
        except KeyError as e:
            raise ValueError(f"Unknown currency {e.args[0]}") from None

        return self._matrix[i][j]

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        """Convert an amount between currencies"""
        return amount * self.rate(from_currency, to_currency)
