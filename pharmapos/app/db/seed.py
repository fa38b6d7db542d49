from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from pharmapos.app.db.session import SessionLocal
from pharmapos.app.db.models.models_v1 import Medicine
from pharmapos.services.inventory import receive_stock
from pharmapos.services.transactions import run_in_transaction

# sku, name, strength, form, unit_price, cost_price, tax_exempt, reorder, opening stock
DEMO_MEDICINES = [
    ("PARA-500", "Paracetamol", "500 mg", "tablet", "2.50", "1.10", False, 50, 400),
    ("AMOX-250", "Amoxicillin", "250 mg", "capsule", "8.90", "4.20", False, 20, 120),
    ("IBU-400", "Ibuprofen", "400 mg", "tablet", "4.75", "2.00", False, 30, 200),
    ("ORS-SACH", "Oral rehydration salts", "20.5 g", "sachet", "1.20", "0.45", True, 40, 80),
    ("INS-GLAR", "Insulin glargine", "100 IU/ml", "injection", "42.00", "30.00", True, 5, 10),
]


def run_seed():
    db = SessionLocal()
    try:
        for sku, name, strength, form, price, cost, exempt, reorder, opening in DEMO_MEDICINES:
            if db.scalar(select(Medicine).where(Medicine.sku == sku)):
                continue

            def work(sku=sku, name=name, strength=strength, form=form, price=price,
                     cost=cost, exempt=exempt, reorder=reorder, opening=opening):
                med = Medicine(
                    sku=sku,
                    name=name,
                    strength=strength,
                    dosage_form=form,
                    unit_price=Decimal(price),
                    cost_price=Decimal(cost),
                    tax_exempt=exempt,
                    reorder_level=reorder,
                    stock_quantity=0,
                )
                db.add(med)
                db.flush()
                receive_stock(db, med.id, opening, actor="seed", reason="Opening stock")

            run_in_transaction(db, work, operation="seed_medicine")

        print(f"SEED OK: {len(DEMO_MEDICINES)} medicines")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
