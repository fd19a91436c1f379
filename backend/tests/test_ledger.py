import unittest
from datetime import date
from decimal import Decimal

from backend.budget_engine import Transaction
from backend.ledger import build_financial_context, summarize_ledger
from backend.portfolio_engine import Investment


class LedgerSummaryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.transactions = [
            Transaction(amount=Decimal("2000"), type="income", date=date(2024, 3, 1), description="Nómina"),
            Transaction(amount=Decimal("500"), type="expense", date=date(2024, 3, 2), category="Casa"),
            Transaction(amount=Decimal("300"), type="investment", date=date(2024, 3, 3), category="Inversión"),
        ]
        self.investments = [
            Investment(
                ticker="MSFT",
                name="Microsoft",
                shares=Decimal("1"),
                purchase_price=Decimal("300"),
                current_price=Decimal("350"),
                purchase_date=date(2024, 3, 3),
                original_currency="USD",
            )
        ]

    def test_balance_is_cash_plus_portfolio_value(self) -> None:
        summary = summarize_ledger(self.transactions, self.investments)

        self.assertEqual(summary.total_income, Decimal("2000"))
        self.assertEqual(summary.total_expenses, Decimal("500"))
        self.assertEqual(summary.investments_cash_out, Decimal("300"))
        self.assertEqual(summary.investments_value, Decimal("350"))
        self.assertEqual(summary.total_balance, Decimal("1550"))

    def test_empty_ledger(self) -> None:
        summary = summarize_ledger([], [])

        self.assertEqual(summary.total_balance, Decimal("0"))
        self.assertEqual(summary.investments_value, Decimal("0"))

    def test_context_lists_totals_and_holdings(self) -> None:
        summary = summarize_ledger(self.transactions, self.investments)

        context = build_financial_context(summary, self.investments)

        self.assertIn("Balance Total: €1550", context)
        self.assertIn("Ingresos Totales: €2000", context)
        self.assertIn("- 1 de MSFT. Comprado en USD. Valor actual: €350", context)


if __name__ == "__main__":
    unittest.main()
