"""
Sales CSV Generator
Writes a single denormalized sales file in the format the loader ingests,
one line per order item, with a sprinkling of malformed rows.

Usage:
    python scripts/generate_dataset.py --orders 20000 --output data/generated/sales.csv
"""

import argparse
import random
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker()
random.seed(42)
np.random.seed(42)
Faker.seed(42)

DEFAULT_OUTPUT = Path(__file__).parent.parent / "data" / "generated" / "sales.csv"

CATEGORIES = ["Electronics", "Clothing", "Home & Garden", "Sports", "Beauty", "Books"]
REGIONS = ["North America", "Europe", "Asia", "South America"]
PAYMENTS = ["Credit Card", "Debit Card", "PayPal", "Apple Pay"]


# ==========================================
# CATALOG
# ==========================================
def generate_customers(n: int) -> pl.DataFrame:
    print(f"Generating {n:,} customers...")
    return pl.DataFrame({
        "Customer ID": [f"C{i:06d}" for i in range(n)],
        "Customer Name": [fake.name() for _ in range(n)],
        "Customer Email": [fake.email() for _ in range(n)],
        "Customer Address": [fake.address().replace("\n", ", ") for _ in range(n)],
    })


def generate_products(n: int) -> pl.DataFrame:
    print(f"Generating {n:,} products...")
    return pl.DataFrame({
        "Product ID": [f"P{i:05d}" for i in range(n)],
        "Product Name": [f"{fake.word().title()} {fake.word().title()}" for _ in range(n)],
        "Category": np.random.choice(CATEGORIES, n),
        "Unit Price": np.round(np.random.uniform(5, 500, n), 2),
    })


# ==========================================
# SALES LINES - VECTORIZED
# ==========================================
def generate_sales(n_orders: int, customers: pl.DataFrame, products: pl.DataFrame) -> pl.DataFrame:
    print(f"Generating {n_orders:,} orders (vectorized)...")

    base_date = datetime.now() - timedelta(days=365)
    days = np.random.randint(0, 365, n_orders)
    orders = pl.DataFrame({
        "Order ID": [f"O{i:08d}" for i in range(n_orders)],
        "Customer ID": np.random.choice(customers["Customer ID"].to_numpy(), n_orders),
        "Date of Sale": [(base_date + timedelta(days=int(d))).strftime("%Y-%m-%d") for d in days],
        "Region": np.random.choice(REGIONS, n_orders),
        "Shipping Cost": np.random.choice([0.0, 5.99, 9.99, 14.99], n_orders),
        "Payment Method": np.random.choice(PAYMENTS, n_orders),
        "items": np.random.randint(1, 5, n_orders),
    })

    # One row per order item
    lines = orders.select(pl.all().repeat_by(pl.col("items")).explode()).drop("items")
    n_lines = lines.height
    product_rows = np.random.randint(0, products.height, n_lines)

    lines = pl.concat([lines, products.select(pl.all().gather(product_rows))], how="horizontal")
    lines = lines.with_columns(
        pl.Series("Quantity Sold", np.random.randint(1, 6, n_lines)),
        pl.Series("Discount", np.random.choice([0.0, 0.05, 0.1, 0.2], n_lines, p=[0.6, 0.2, 0.15, 0.05])),
    )
    return lines.join(customers, on="Customer ID", how="left")


def add_malformed_rows(df: pl.DataFrame, n: int) -> pl.DataFrame:
    """Blank identifiers and unparseable numbers the loader must tolerate"""
    if n <= 0:
        return df

    broken = df.sample(n, seed=7).with_columns(pl.all().cast(pl.Utf8))
    half = n // 2
    broken = broken.with_columns(
        pl.when(pl.int_range(pl.len()) < half).then(pl.lit("")).otherwise(pl.col("Order ID")).alias("Order ID"),
        pl.when(pl.int_range(pl.len()) >= half).then(pl.lit("n/a")).otherwise(pl.col("Unit Price")).alias("Unit Price"),
        pl.lit("not a date").alias("Date of Sale"),
    )
    return pl.concat([df.with_columns(pl.all().cast(pl.Utf8)), broken])


COLUMN_ORDER = [
    "Order ID", "Product ID", "Customer ID", "Product Name", "Category", "Region",
    "Date of Sale", "Quantity Sold", "Unit Price", "Discount", "Shipping Cost",
    "Payment Method", "Customer Name", "Customer Email", "Customer Address",
]


# ==========================================
# MAIN
# ==========================================
def main():
    parser = argparse.ArgumentParser(description="Generate a sample sales CSV")
    parser.add_argument("--orders", type=int, default=20000, help="Number of distinct orders")
    parser.add_argument("--customers", type=int, default=2000, help="Number of customers")
    parser.add_argument("--products", type=int, default=500, help="Number of products")
    parser.add_argument("--malformed", type=int, default=25, help="Malformed rows to append")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT, help="Output CSV path")
    args = parser.parse_args()

    customers = generate_customers(args.customers)
    products = generate_products(args.products)
    sales = generate_sales(args.orders, customers, products)
    sales = add_malformed_rows(sales.select(COLUMN_ORDER), args.malformed)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    sales.write_csv(args.output)

    size = args.output.stat().st_size / 1024 / 1024
    print(f"\nWrote {sales.height:,} rows to {args.output} ({size:.2f} MB)")


if __name__ == "__main__":
    main()
