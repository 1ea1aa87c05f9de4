"""Sales reports and the input sheet for stock insight generation.

Everything here works on domain snapshots (``Sale`` and ``InventoryItem``)
and never touches the database.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import pandas as pd

from waveapp.errors import ValidationError
from waveapp.time_utils import local_today

SALES_COLUMNS = [
    "sale_id",
    "transaction_id",
    "date",
    "channel",
    "product_id",
    "variant_id",
    "sku",
    "name",
    "quantity",
    "price",
    "revenue",
    "cogs",
]

PROMPT_TEMPLATE = """You are an AI assistant that provides insights about optimal stock levels for a business.

You will be provided with sales data, inventory turnover rates, current stock levels, and any additional context.

Based on this information, provide actionable insights to help the manager make informed decisions about ordering and prevent stockouts or overstocking.

Sales Data: {sales_data}

Inventory Turnover Rates: {inventory_turnover_rates}

Current Stock Levels: {current_stock_levels}

Additional Context: {additional_context}

Insights:"""


@dataclass(frozen=True)
class StockInsightInput:
    sales_data: str
    inventory_turnover_rates: str
    current_stock_levels: str
    additional_context: Optional[str] = None

    def to_dict(self):
        return {
            "salesData": self.sales_data,
            "inventoryTurnoverRates": self.inventory_turnover_rates,
            "currentStockLevels": self.current_stock_levels,
            "additionalContext": self.additional_context,
        }


def _display_name(sale):
    if sale.variant_name:
        return f"{sale.product_name} - {sale.variant_name}"
    return sale.product_name


def sales_frame(sales):
    rows = [
        {
            "sale_id": s.id,
            "transaction_id": s.transaction_id,
            "date": s.sale_date,
            "channel": s.channel,
            "product_id": s.product_id,
            "variant_id": s.variant_id,
            "sku": s.sku,
            "name": _display_name(s),
            "quantity": s.quantity,
            "price": s.price_at_sale,
            "revenue": s.revenue,
            "cogs": s.cogs_at_sale * s.quantity,
        }
        for s in sales
        if s.cancelled_at is None
    ]
    return pd.DataFrame(rows, columns=SALES_COLUMNS)


def daily_sales_summary(sales, channel=None):
    """Aggregate quantity, revenue, COGS and gross profit per day and channel."""
    df = sales_frame(sales)
    if channel:
        df = df[df["channel"] == channel.strip().lower()]
    if df.empty:
        return []

    df = df.assign(day=pd.to_datetime(df["date"]).dt.date)
    summary = (
        df.groupby(["day", "channel"], as_index=False)
        .agg(
            transactions=("sale_id", "count"),
            quantity=("quantity", "sum"),
            revenue=("revenue", "sum"),
            cogs=("cogs", "sum"),
        )
        .sort_values(["day", "channel"], ascending=[False, True])
    )
    summary["gross_profit"] = summary["revenue"] - summary["cogs"]

    return [
        {
            "date": row.day.isoformat(),
            "channel": row.channel,
            "transactions": int(row.transactions),
            "quantity": int(row.quantity),
            "revenue": float(row.revenue),
            "cogs": float(row.cogs),
            "grossProfit": float(row.gross_profit),
        }
        for row in summary.itertuples(index=False)
    ]


def _stock_frame(items):
    rows = []
    for item in items:
        if item.is_archived:
            continue
        if item.has_variants:
            for variant in item.variants:
                rows.append({
                    "entity_id": variant.id,
                    "name": f"{item.name} - {variant.name}",
                    "sku": variant.sku,
                    "stock": variant.stock,
                })
        else:
            rows.append({
                "entity_id": item.id,
                "name": item.name,
                "sku": item.sku,
                "stock": item.stocking.stock,
            })
    return pd.DataFrame(rows, columns=["entity_id", "name", "sku", "stock"])


def build_stock_insight_input(items, sales, days=30, today=None, additional_context=None):
    """Summarize the last ``days`` of sales and current stock as CSV text.

    Turnover is units sold in the window divided by the average of the current
    level and the level at the start of the window (current + sold).
    """
    if days <= 0:
        raise ValidationError("Jumlah hari harus lebih dari 0.")
    today = today or local_today()
    window_start = today - timedelta(days=days - 1)

    sales_df = sales_frame(sales)
    if not sales_df.empty:
        sale_days = pd.to_datetime(sales_df["date"]).dt.date
        sales_df = sales_df[(sale_days >= window_start) & (sale_days <= today)]

    stock_df = _stock_frame(items)

    sales_df = sales_df.assign(entity_id=sales_df["variant_id"].fillna(sales_df["product_id"]))
    sold = sales_df.groupby("entity_id")["quantity"].sum()

    turnover = stock_df.copy()
    turnover["units_sold"] = turnover["entity_id"].map(sold).fillna(0).astype(int)
    average_stock = (turnover["stock"] * 2 + turnover["units_sold"]) / 2
    turnover["turnover_rate"] = (
        (turnover["units_sold"] / average_stock.where(average_stock > 0)).fillna(0).round(2)
    )
    turnover["days_of_cover"] = (
        turnover["stock"] / (turnover["units_sold"] / days).where(turnover["units_sold"] > 0)
    ).round(1)

    sales_csv = sales_df.assign(date=pd.to_datetime(sales_df["date"]).dt.date)[
        ["date", "channel", "sku", "name", "quantity", "revenue"]
    ].to_csv(index=False)

    return StockInsightInput(
        sales_data=sales_csv,
        inventory_turnover_rates=turnover[
            ["sku", "name", "units_sold", "turnover_rate", "days_of_cover"]
        ].to_csv(index=False),
        current_stock_levels=stock_df[["sku", "name", "stock"]].to_csv(index=False),
        additional_context=additional_context,
    )


def generate_stock_insights(insight_input, generator):
    """Render the prompt and hand it to ``generator`` (a ``str -> str`` callable)."""
    if generator is None:
        raise ValidationError("Generator insight stok belum dikonfigurasi.")
    prompt = PROMPT_TEMPLATE.format(
        sales_data=insight_input.sales_data,
        inventory_turnover_rates=insight_input.inventory_turnover_rates,
        current_stock_levels=insight_input.current_stock_levels,
        additional_context=insight_input.additional_context or "-",
    )
    try:
        text = generator(prompt)
    except Exception:
        logging.exception("Gagal membuat insight stok")
        raise
    return {"insights": (text or "").strip()}
