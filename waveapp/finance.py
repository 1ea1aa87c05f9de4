"""General ledger and balance sheet built from sales, journal entries and stock.

Like ``insights``, this works on domain snapshots only. Sales post to
receivables and revenue at the sale price and, when a cost is known, to COGS
and inventory. "Stock In" adjustments on costed items post to inventory
against cash/payables. Manual (and automatic) journal entries post as entered.
"""
import pandas as pd

from waveapp.insights import sales_frame

ACCOUNT_RECEIVABLE = "Piutang Usaha / Kas"
ACCOUNT_REVENUE = "Pendapatan Penjualan"
ACCOUNT_COGS = "Beban Pokok Penjualan"
ACCOUNT_INVENTORY = "Persediaan Barang"
ACCOUNT_CASH_PAYABLE = "Kas / Utang Usaha"

STOCK_IN_REASON = "stock in"
CREDIT_NORMAL_KEYWORDS = ("pendapatan", "modal", "utang", "kewajiban")
POSTING_COLUMNS = ["date", "account", "description", "debit", "credit"]


def is_debit_normal(account):
    name = account.lower()
    return not any(keyword in name for keyword in CREDIT_NORMAL_KEYWORDS)


def _posting(when, account, description, debit=0.0, credit=0.0):
    return {
        "date": when,
        "account": account,
        "description": description,
        "debit": float(debit),
        "credit": float(credit),
    }


def _journal_postings(journal_entries):
    for entry in journal_entries:
        yield _posting(entry.date, entry.debit_account, entry.description, debit=entry.amount)
        yield _posting(entry.date, entry.credit_account, entry.description, credit=entry.amount)


def _sale_postings(sales):
    for row in sales_frame(sales).itertuples(index=False):
        description = f"Penjualan {row.name} ({row.quantity}x) - {row.channel}"
        yield _posting(row.date, ACCOUNT_RECEIVABLE, description, debit=row.revenue)
        yield _posting(row.date, ACCOUNT_REVENUE, description, credit=row.revenue)
        if row.cogs > 0:
            yield _posting(row.date, ACCOUNT_COGS, description, debit=row.cogs)
            yield _posting(row.date, ACCOUNT_INVENTORY, description, credit=row.cogs)


def _costed_histories(items):
    for item in items:
        if item.has_variants:
            for variant in item.variants:
                yield f"{item.name} - {variant.name}", variant.cost_price, variant.history
        else:
            yield item.name, item.stocking.cost_price, item.stocking.history


def _stock_in_postings(items):
    for name, cost_price, history in _costed_histories(items):
        if not cost_price:
            continue
        for entry in history:
            if entry.change <= 0 or entry.reason.strip().lower() != STOCK_IN_REASON:
                continue
            value = entry.change * cost_price
            description = f"Stok Masuk: {name} (Tambah {entry.change} @ {cost_price:g})"
            yield _posting(entry.date, ACCOUNT_INVENTORY, description, debit=value)
            yield _posting(entry.date, ACCOUNT_CASH_PAYABLE, description, credit=value)


def ledger_postings(sales, journal_entries, items=()):
    rows = [
        *_journal_postings(journal_entries),
        *_sale_postings(sales),
        *_stock_in_postings(items),
    ]
    df = pd.DataFrame(rows, columns=POSTING_COLUMNS)
    if df.empty:
        return df
    df["date"] = pd.to_datetime(df["date"])
    return df.sort_values("date", kind="mergesort", ignore_index=True)


def general_ledger(sales, journal_entries, items=(), account=None):
    """Per-account postings in date order with a running balance.

    Accounts whose name mentions revenue, capital or liabilities are
    credit-normal; every other account is debit-normal.
    """
    df = ledger_postings(sales, journal_entries, items)
    if account:
        df = df[df["account"] == account]
    if df.empty:
        return []

    debit_normal = df["account"].map(is_debit_normal)
    df = df.assign(
        signed=(df["debit"] - df["credit"]).where(debit_normal, df["credit"] - df["debit"])
    )
    df["balance"] = df.groupby("account")["signed"].cumsum()

    ledger = []
    for name, postings in df.groupby("account", sort=True):
        ledger.append({
            "accountName": name,
            "debitNormal": is_debit_normal(name),
            "entries": [
                {
                    "date": row.date.isoformat(),
                    "description": row.description,
                    "debit": float(row.debit),
                    "credit": float(row.credit),
                    "balance": float(row.balance),
                }
                for row in postings.itertuples(index=False)
            ],
            "totalDebit": float(postings["debit"].sum()),
            "totalCredit": float(postings["credit"].sum()),
            "balance": float(postings["balance"].iloc[-1]),
        })
    return ledger


def inventory_value(items):
    total = 0.0
    for item in items:
        if item.has_variants:
            total += sum(v.stock * (v.cost_price or 0) for v in item.variants)
        else:
            total += item.stocking.stock * (item.stocking.cost_price or 0)
    return float(total)


def _journal_frame(journal_entries):
    return pd.DataFrame(
        [
            {
                "debit_account": e.debit_account.lower(),
                "credit_account": e.credit_account.lower(),
                "amount": e.amount,
            }
            for e in journal_entries
        ],
        columns=["debit_account", "credit_account", "amount"],
    )


def balance_sheet(items, sales, journal_entries):
    """Simplified balance sheet.

    Cash is sales revenue less operating expenses, inventory is valued at cost
    and all earnings are retained; liabilities are not tracked and stay at 0.
    """
    sales_df = sales_frame(sales)
    revenue = float(sales_df["revenue"].sum())
    cogs = float(sales_df["cogs"].sum())
    gross_profit = revenue - cogs

    journal = _journal_frame(journal_entries)
    is_expense = journal["debit_account"].str.contains("biaya|beban", regex=True)
    is_other_income = journal["credit_account"].str.contains("pendapatan", regex=False)
    operational_expenses = float(journal.loc[is_expense, "amount"].sum())
    other_income = float(journal.loc[is_other_income, "amount"].sum())
    retained_earnings = gross_profit - operational_expenses + other_income

    cash = revenue - operational_expenses
    inventory = inventory_value(items)
    total_assets = cash + inventory
    total_liabilities = 0.0

    return {
        "assets": {
            "cash": cash,
            "inventory": inventory,
            "total": total_assets,
        },
        "liabilities": {
            "accountsPayable": 0.0,
            "total": total_liabilities,
        },
        "equity": {
            "retainedEarnings": retained_earnings,
            "total": retained_earnings,
        },
        "incomeSummary": {
            "revenue": revenue,
            "cogs": cogs,
            "grossProfit": gross_profit,
            "operationalExpenses": operational_expenses,
            "otherIncome": other_income,
        },
        "totalLiabilitiesAndEquity": total_liabilities + retained_earnings,
    }
