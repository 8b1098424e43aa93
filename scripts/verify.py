"""
Cart Cache Verification Script

Verifies integrity of the file-backed pending carts.
Run from project root: python scripts/verify.py
"""

import json
import os
import sys
from datetime import datetime

import pydantic

from backoffice.core.config import get_settings
from backoffice.schemas import CartDocument
from backoffice.services.cart.file import FileCartBackend


def verify_carts(directory: str) -> bool:
    """Check every cart document under ``directory``; False on any defect."""

    print("=" * 60)
    print("🔍 CART CACHE VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📁 Directory: {directory}")
    print("=" * 60)

    if not os.path.isdir(directory):
        print("\n❌ Cart directory not found!")
        print("   Start the server in development mode and add items first.")
        return False

    backend = FileCartBackend(directory)
    table_ids = backend.table_ids()
    problems = []
    carts = []

    for table_id in table_ids:
        raw = backend.get(table_id)
        if raw is None:
            continue
        try:
            document = CartDocument.model_validate_json(raw)
        except (json.JSONDecodeError, pydantic.ValidationError) as e:
            problems.append(f"table {table_id}: unreadable ({str(e).splitlines()[0]})")
            continue

        if document.table_id != table_id:
            problems.append(f"table {table_id}: document belongs to table {document.table_id}")
        product_ids = [item.id for item in document.items]
        if len(product_ids) != len(set(product_ids)):
            problems.append(f"table {table_id}: duplicate product lines")
        if any(item.quantity < 1 for item in document.items):
            problems.append(f"table {table_id}: non-positive quantity")

        cart = document.to_cart()
        if document.total_amount != cart.total_amount:
            problems.append(
                f"table {table_id}: stored total {document.total_amount} "
                f"!= recomputed {cart.total_amount}"
            )
        carts.append(cart)

    leftovers = [
        name for name in os.listdir(directory) if name.endswith(".tmp")
    ]

    print(f"\n📊 STATISTICS:")
    print(f"   Cart Documents: {len(table_ids)}")
    print(f"   Linked To Orders: {len([c for c in carts if c.order_id is not None])}")
    print(f"   Drafts: {len([c for c in carts if c.order_id is None])}")
    print(f"   Pending Amount: {sum(c.total_amount for c in carts):,.0f}")

    if leftovers:
        print(f"\n⚠️ Interrupted writes: {leftovers}")
    if problems:
        print(f"\n⚠️ {len(problems)} problem(s):")
        for problem in problems:
            print(f"   {problem}")
    else:
        print(f"\n✅ All cart documents consistent")

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if not problems else "❌ VERIFICATION FAILED")
    print("=" * 60)

    return not problems


if __name__ == "__main__":
    directory = sys.argv[1] if len(sys.argv) > 1 else get_settings().data_directory
    sys.exit(0 if verify_carts(directory) else 1)
