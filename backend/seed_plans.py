import os
import sys
from pathlib import Path

import psycopg2
from psycopg2.extras import Json
from dotenv import load_dotenv

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from backend.app.entitlements.catalog import DEFAULT_PLAN_FEATURES
from backend.app.membership.repository import apply_schema
from backend.app.plans.models import PlanName

load_dotenv()

DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "membership_db"),
    user=os.getenv("DB_USER", "membership_user"),
    password=os.getenv("DB_PASSWORD", "membership_pass"),
)

# (name, label, price, duration_days)
SEED_PLANS = (
    (PlanName.BASIC, "Basic", 100000, 30),
    (PlanName.PRO, "Pro", 250000, 90),
    (PlanName.VIP, "VIP", 600000, 180),
)

_UPSERT_SQL = """
    INSERT INTO membership_plans (name, label, price, duration_days, features, is_active)
    VALUES (%s, %s, %s, %s, %s, TRUE)
    ON CONFLICT (name) DO UPDATE
        SET label = EXCLUDED.label,
            price = EXCLUDED.price,
            duration_days = EXCLUDED.duration_days,
            features = EXCLUDED.features,
            updated_at = NOW()
"""


def seed_plans(conn) -> int:
    """Upsert the default catalog. Existing rows keep their files and active flag."""

    with conn.cursor() as cur:
        for name, label, price, duration_days in SEED_PLANS:
            cur.execute(
                _UPSERT_SQL,
                (name.value, label, price, duration_days, Json(DEFAULT_PLAN_FEATURES[name])),
            )
    conn.commit()
    return len(SEED_PLANS)


def main():
    with psycopg2.connect(**DB_CFG) as conn:
        apply_schema(conn)
        count = seed_plans(conn)
    print(f"Done. {count} plans upserted.")

if __name__ == "__main__":
    main()
