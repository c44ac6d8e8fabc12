# Terminal view of the payments table
# Lets a user:
# add a payment
# list every payment
# see monthly totals per account category
# delete a payment

import argparse
import sys

import pandas as pd
from dotenv import load_dotenv

from payment_store import (
    ConfigError,
    NotFoundError,
    PaymentStore,
    StorageError,
    create_payments_engine,
    make_db_url,
)
from payments import FIELDS, AccountCategory, PaymentMethod, ValidationError, validate_or_raise


def main(argv=None):
    parser = argparse.ArgumentParser(description="Expense tracking console.")
    parser.add_argument("--database", help="SQLAlchemy database URL (defaults to the DB_* env vars).")
    args = parser.parse_args(argv)

    load_dotenv()
    try:
        engine = create_payments_engine(args.database or make_db_url())
    except ConfigError as e:
        print(f"{e}. Pass --database or set the DB_* variables.")
        sys.exit(1)

    store = PaymentStore(engine)
    try:
        store.create_schema()
    except StorageError as e:
        print(f"Could not prepare the database: {e.__cause__ or e}")
        engine.dispose()
        sys.exit(1)

    try:
        # User input loop
        while True:
            print("\nChoose an input:")
            print("1. Add payment")
            print("2. Show payments")
            print("3. Monthly totals")
            print("4. Delete payment")
            print("5. Quit")
            choice = input("> ")

            if choice == "1":
                print(f"Account category ({' / '.join(c.value for c in AccountCategory)})")
                print(f"Payment method ({' / '.join(m.value for m in PaymentMethod)})")
                raw = {name: input(f"{name}: ") for name in FIELDS}
                add_payment(store, raw)
            elif choice == "2":
                show_frame("All payments", payments_frame(store))
            elif choice == "3":
                show_frame("Monthly totals", totals_frame(store))
            elif choice == "4":
                delete_payment(store, input("id: "))
            elif choice == "5":
                print("Goodbye :)")
                break
            else:
                print("Unknown command")
    finally:
        engine.dispose()


def add_payment(store, raw):
    try:
        record = validate_or_raise(raw)
    except ValidationError as e:
        for err in e.errors:
            print(f"  - {err.msg}")
        return None
    new_id = store.create(record)
    print(f"Added payment {new_id}: {record.payee} ({record.amount}) for {record.payment_month}")
    return new_id


def delete_payment(store, raw_id):
    try:
        payment_id = int(raw_id)
    except ValueError:
        print("id must be a number")
        return False
    try:
        payment = store.get(payment_id)
    except NotFoundError:
        print(f"No payment with id {payment_id}")
        return False
    store.delete(payment_id)
    print(f"Deleted payment {payment_id} ({payment.payee})")
    return True


def payments_frame(store):
    rows = [
        {
            "id": p.id,
            "account_category": p.account_category.value,
            "payee": p.payee,
            "amount": p.amount,
            "payment_month": p.payment_month,
            "payment_method": p.payment_method.value,
        }
        for p in store.list_all()
    ]
    return pd.DataFrame(rows, columns=["id", *FIELDS])


def totals_frame(store):
    # One row per month, one column per account category
    rows = [
        {
            "payment_month": t.payment_month,
            "account_category": t.account_category.value,
            "total_amount": t.total_amount,
        }
        for t in store.list_aggregated()
    ]
    if not rows:
        return pd.DataFrame(columns=["payment_month"])
    df = pd.DataFrame(rows)
    return df.pivot(index="payment_month", columns="account_category", values="total_amount").fillna(0)


def show_frame(title, df):
    if df.empty:
        print(f"\n{title}: nothing to show :(")
    else:
        print(f"\n{title}:")
        print(df)


if __name__ == "__main__":
    main()
