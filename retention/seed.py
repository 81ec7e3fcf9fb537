#!/usr/bin/env python3
"""
Seed script — Initializes the catalog database, creates the sample
operational schema with aged rows, and registers the default retire jobs.
Run with: python -m retention seed
"""
import argparse
from datetime import timedelta
from decimal import Decimal

from retention.database import init_db, SessionLocal, engine
from retention.models import (
    RetireJob, SampleBase, Customer, Order, OrderDetail, AuditLog, utcnow
)


# Pre-configured retire jobs for the sample schema.
# Archive parents before children, purge children before parents.
DEFAULT_JOBS = [
    {
        "source_table": "AuditLog",
        "date_column": "ActionDate",
        "target_table": "AuditLog_Archive",
        "retention_days": 90,
        "batch_size": 5000,
        "action": "ARCHIVE",
        "processing_order": 10,
        "notes": "Archive audit entries older than 90 days",
    },
    {
        "source_table": "Orders",
        "date_column": "OrderDate",
        "target_table": "Orders_Archive",
        "retention_days": 365,
        "batch_size": 1000,
        "action": "ARCHIVE",
        "dry_run": True,
        "processing_order": 15,
        "notes": "Dry run: how many orders a one-year archive would move",
    },
    {
        "source_table": "OrderDetails",
        "date_column": "CreatedDate",
        "retention_days": 730,
        "batch_size": 1000,
        "action": "DELETE",
        "processing_order": 20,
        "notes": "Purge order lines before their orders",
    },
    {
        "source_table": "Orders",
        "date_column": "OrderDate",
        "retention_days": 730,
        "batch_size": 1000,
        "action": "DELETE",
        "processing_order": 30,
        "notes": "Purge orders after their lines",
    },
]

SYNC_FIELDS = [
    "date_column", "target_store", "target_schema", "retention_days",
    "batch_size", "dry_run", "processing_order", "notes",
]


def _job_key(job_data: dict):
    return (
        job_data.get("source_schema"),
        job_data["source_table"],
        job_data["action"],
        job_data.get("target_table"),
    )


def sync_default_jobs(session) -> tuple:
    """Register DEFAULT_JOBS, updating existing ones in place. Returns (created, updated)."""
    created = 0
    updated = 0
    existing_by_key = {
        (j.source_schema, j.source_table, j.action, j.target_table): j
        for j in session.query(RetireJob).all()
    }
    for job_data in DEFAULT_JOBS:
        existing = existing_by_key.get(_job_key(job_data))
        if not existing:
            session.add(RetireJob(**job_data))
            created += 1
            print(f"  ✓ Registered: {job_data['action']} {job_data['source_table']} (order: {job_data['processing_order']})")
            continue

        changed = False
        for field in SYNC_FIELDS:
            new_value = job_data.get(field, False if field == "dry_run" else None)
            if getattr(existing, field) != new_value:
                setattr(existing, field, new_value)
                changed = True
        # Preserve operator choice for is_enabled
        if changed:
            updated += 1
            print(f"  ↻ Synced: {job_data['action']} {job_data['source_table']}")
        else:
            print(f"  → Unchanged: {job_data['action']} {job_data['source_table']}")
    session.commit()
    return created, updated


def populate_sample_data(session, customers: int = 20, orders_per_customer: int = 12, now=None) -> int:
    """
    Insert customers with one order per month going back in time, two lines
    per order, and one audit entry per order. Returns the number of orders.
    """
    now = now or utcnow()
    order_count = 0
    for c in range(customers):
        customer = Customer(
            FirstName=f"Customer{c + 1}",
            LastName="Sample",
            Email=f"customer{c + 1}@example.com",
            CreatedDate=now - timedelta(days=1200),
        )
        session.add(customer)
        session.flush()

        for m in range(orders_per_customer):
            # Spread orders across roughly three years
            placed = now - timedelta(days=30 * m * 3 + c)
            order = Order(
                CustomerID=customer.CustomerID,
                OrderDate=placed,
                TotalAmount=Decimal("0"),
                CreatedDate=placed,
            )
            session.add(order)
            session.flush()

            total = Decimal("0")
            for line in range(2):
                price = Decimal(10 + line * 5 + m)
                session.add(OrderDetail(
                    OrderID=order.OrderID,
                    ProductName=f"Product {line + 1}",
                    Quantity=line + 1,
                    UnitPrice=price,
                    CreatedDate=placed,
                ))
                total += price * (line + 1)
            order.TotalAmount = total

            session.add(AuditLog(
                ActionType="INSERT",
                TableName="Orders",
                RecordID=order.OrderID,
                ActionDate=placed,
                Details=f"Order {order.OrderID} created",
            ))
            order_count += 1
    session.commit()
    return order_count


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed the retention engine catalog")
    parser.add_argument(
        "--skip-sample-data",
        action="store_true",
        help="Only initialize the catalog and sync jobs, do not create sample tables or rows.",
    )
    args = parser.parse_args(argv)

    print("=" * 60)
    print("  Retention Engine — Seed Script")
    print("=" * 60)

    # 1. Initialize database
    print("\n[1/3] Initializing database...")
    init_db()
    print("  ✓ Catalog tables created")

    # 2. Sample operational schema
    if args.skip_sample_data:
        print("\n[2/3] Sample data skipped by --skip-sample-data.")
    else:
        print("\n[2/3] Creating sample operational schema...")
        SampleBase.metadata.create_all(bind=engine)
        session = SessionLocal()
        try:
            if session.query(Customer).count():
                print("  → Sample rows already present")
            else:
                orders = populate_sample_data(session)
                print(f"  ✓ Inserted {orders} orders with lines and audit entries")
        finally:
            session.close()

    # 3. Register or sync jobs
    print("\n[3/3] Registering retire jobs...")
    session = SessionLocal()
    try:
        created, updated = sync_default_jobs(session)
        print(f"  ✓ Jobs synced (created={created}, updated={updated})")
    finally:
        session.close()

    print("\n" + "=" * 60)
    print("  ✓ Seed complete! Run the jobs once with:")
    print("    python -m retention run")
    print("  or start the scheduler and API with:")
    print("    python -m retention serve")
    print("=" * 60)


if __name__ == "__main__":
    main()
