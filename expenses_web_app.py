"""
Expense tracker web app.
- Register, list, edit and delete payments (account category, payee, amount, month, method).
- Home page shows totals per month and account category.
- Submissions are validated before anything is written; POST /expenses validates without saving.
- Database comes from DB_* env vars (MySQL) or --database for any SQLAlchemy URL.

Run with: `python expenses_web_app.py --database sqlite:///payments.db`
Tests: `python -m unittest -v test_expenses_web_app`
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask, flash, jsonify, redirect, render_template_string, request, url_for

from payment_store import (
    ConfigError,
    NotFoundError,
    PaymentStore,
    StorageError,
    create_payments_engine,
    make_db_url,
)
from payments import AccountCategory, PaymentMethod, validate

DEFAULT_PORT = 4000

LAYOUT_TOP = """
<!doctype html>
<html lang=\"ja\">
<head>
  <meta charset=\"utf-8\">
  <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">
  <title>Expenses</title>
  <link href=\"https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css\" rel=\"stylesheet\">
  <style>
    body { padding-top: 2rem; }
    .amount { font-variant-numeric: tabular-nums; }
  </style>
</head>
<body>
<div class=\"container\">
  <div class=\"d-flex flex-wrap justify-content-between align-items-start mb-3 gap-2\">
    <h1 class=\"mb-1\">Expenses</h1>
    <div class=\"btn-group\" role=\"group\">
      <a class=\"btn btn-outline-primary\" href=\"{{ url_for('index') }}\">Monthly totals</a>
      <a class=\"btn btn-outline-primary\" href=\"{{ url_for('table') }}\">All payments</a>
      <a class=\"btn btn-primary\" href=\"{{ url_for('register_form') }}\">Register</a>
    </div>
  </div>

  {% with messages = get_flashed_messages() %}
    {% if messages %}
      <div class=\"alert alert-info\">{{ messages[0] }}</div>
    {% endif %}
  {% endwith %}
"""

LAYOUT_BOTTOM = """
</div>
</body>
</html>
"""

HOME_TEMPLATE = LAYOUT_TOP + """
  <div class=\"card shadow-sm\">
    <div class=\"card-body\">
      <h5 class=\"card-title\">Totals by month and account category</h5>
      <table class=\"table table-sm align-middle\">
        <thead><tr><th>Month</th><th>Account category</th><th class=\"text-end\">Total</th></tr></thead>
        <tbody>
        {% for t in totals %}
          <tr>
            <td class=\"text-nowrap\">{{ t.payment_month }}</td>
            <td>{{ t.account_category.value }} <span class=\"text-muted small\">({{ t.account_category.label }})</span></td>
            <td class=\"text-end amount\">{{ '%.2f'|format(t.total_amount) }}</td>
          </tr>
        {% else %}
          <tr><td colspan=\"3\" class=\"text-muted\">No payments yet.</td></tr>
        {% endfor %}
        </tbody>
      </table>
    </div>
  </div>
""" + LAYOUT_BOTTOM

PAYMENT_FORM = """
  {% if errors %}
    <div class=\"alert alert-danger\">
      <ul class=\"mb-0\">
      {% for e in errors %}<li>{{ e.msg }}</li>{% endfor %}
      </ul>
    </div>
  {% endif %}
  <form method=\"post\" action=\"{{ action }}\" class=\"row g-3\">
    <div class=\"col-12 col-md-6\">
      <label class=\"form-label\">Account category <span class=\"text-danger\">*</span></label>
      <select class=\"form-select\" name=\"account_category\">
        <option value=\"\">Select...</option>
        {% for c in categories %}
          <option value=\"{{ c.value }}\" {{ 'selected' if form.get('account_category') == c.value }}>{{ c.value }} ({{ c.label }})</option>
        {% endfor %}
      </select>
    </div>
    <div class=\"col-12 col-md-6\">
      <label class=\"form-label\">Payee <span class=\"text-danger\">*</span></label>
      <input type=\"text\" class=\"form-control\" name=\"payee\" value=\"{{ form.get('payee', '') }}\">
    </div>
    <div class=\"col-12 col-md-4\">
      <label class=\"form-label\">Amount <span class=\"text-danger\">*</span></label>
      <input type=\"text\" inputmode=\"decimal\" class=\"form-control\" name=\"amount\" value=\"{{ form.get('amount', '') }}\" placeholder=\"0.00\">
    </div>
    <div class=\"col-12 col-md-4\">
      <label class=\"form-label\">Payment month <span class=\"text-danger\">*</span></label>
      <input type=\"month\" class=\"form-control\" name=\"payment_month\" value=\"{{ form.get('payment_month', '') }}\" placeholder=\"YYYY-MM\">
    </div>
    <div class=\"col-12 col-md-4\">
      <label class=\"form-label\">Payment method <span class=\"text-danger\">*</span></label>
      <select class=\"form-select\" name=\"payment_method\">
        <option value=\"\">Select...</option>
        {% for m in methods %}
          <option value=\"{{ m.value }}\" {{ 'selected' if form.get('payment_method') == m.value }}>{{ m.value }} ({{ m.label }})</option>
        {% endfor %}
      </select>
    </div>
    <div class=\"col-12\">
      <button class=\"btn btn-primary\" type=\"submit\">{{ submit_label }}</button>
      <a class=\"btn btn-outline-secondary\" href=\"{{ url_for('table') }}\">Cancel</a>
    </div>
  </form>
"""

REGISTER_TEMPLATE = LAYOUT_TOP + """
  <div class=\"card shadow-sm\">
    <div class=\"card-body\">
      <h5 class=\"card-title\">Register payment</h5>
""" + PAYMENT_FORM + """
    </div>
  </div>
""" + LAYOUT_BOTTOM

EDIT_TEMPLATE = LAYOUT_TOP + """
  <div class=\"card shadow-sm\">
    <div class=\"card-body\">
      <h5 class=\"card-title\">Edit payment #{{ payment_id }}</h5>
""" + PAYMENT_FORM + """
    </div>
  </div>
""" + LAYOUT_BOTTOM

TABLE_TEMPLATE = LAYOUT_TOP + """
  <div class=\"card shadow-sm\">
    <div class=\"card-body\">
      <h5 class=\"card-title\">Payments</h5>
      <div class=\"table-responsive\">
        <table class=\"table table-sm align-middle\">
          <thead>
            <tr>
              <th>ID</th><th>Account category</th><th>Payee</th><th class=\"text-end\">Amount</th>
              <th>Month</th><th>Method</th><th></th>
            </tr>
          </thead>
          <tbody>
          {% for p in payments %}
            <tr>
              <td>{{ p.id }}</td>
              <td>{{ p.account_category.value }}</td>
              <td>{{ p.payee }}</td>
              <td class=\"text-end amount\">{{ p.amount }}</td>
              <td class=\"text-nowrap\">{{ p.payment_month }}</td>
              <td>{{ p.payment_method.value }}</td>
              <td class=\"text-end text-nowrap\">
                <a class=\"btn btn-sm btn-outline-primary\" href=\"{{ url_for('edit', payment_id=p.id) }}\">Edit</a>
                <a class=\"btn btn-sm btn-outline-danger\" href=\"{{ url_for('delete_confirm', payment_id=p.id) }}\">Delete</a>
              </td>
            </tr>
          {% else %}
            <tr><td colspan=\"7\" class=\"text-muted\">No payments yet.</td></tr>
          {% endfor %}
          </tbody>
        </table>
      </div>
    </div>
  </div>
""" + LAYOUT_BOTTOM

DELETE_CONFIRM_TEMPLATE = LAYOUT_TOP + """
  <div class=\"card shadow-sm\">
    <div class=\"card-body\">
      <h5 class=\"card-title\">Delete this payment?</h5>
      <dl class=\"row\">
        <dt class=\"col-sm-3\">Account category</dt><dd class=\"col-sm-9\">{{ item.account_category.value }}</dd>
        <dt class=\"col-sm-3\">Payee</dt><dd class=\"col-sm-9\">{{ item.payee }}</dd>
        <dt class=\"col-sm-3\">Amount</dt><dd class=\"col-sm-9 amount\">{{ item.amount }}</dd>
        <dt class=\"col-sm-3\">Payment month</dt><dd class=\"col-sm-9\">{{ item.payment_month }}</dd>
        <dt class=\"col-sm-3\">Payment method</dt><dd class=\"col-sm-9\">{{ item.payment_method.value }}</dd>
      </dl>
      <form method=\"post\" action=\"{{ url_for('delete', payment_id=item.id) }}\" class=\"d-flex gap-2\">
        <button class=\"btn btn-danger\" type=\"submit\">Delete</button>
        <a class=\"btn btn-outline-secondary\" href=\"{{ url_for('table') }}\">Cancel</a>
      </form>
    </div>
  </div>
""" + LAYOUT_BOTTOM


# -----------------------------
# App factory (allows testing)
# -----------------------------

def create_app(db_url: str | None = None, *, engine_override=None) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-key-change-me")

    if engine_override is not None:
        engine = engine_override
    else:
        engine = create_payments_engine(db_url or make_db_url())

    store = PaymentStore(engine)
    store.create_schema()

    def _render_form(template: str, *, form, errors, action: str, submit_label: str, status: int = 200, **ctx):
        return render_template_string(
            template,
            form=form,
            errors=errors,
            action=action,
            submit_label=submit_label,
            categories=list(AccountCategory),
            methods=list(PaymentMethod),
            **ctx,
        ), status

    @app.errorhandler(StorageError)
    def storage_error(err: StorageError):
        app.logger.error("database error on %s %s: %s", request.method, request.path, err, exc_info=err)
        return "Database error.", 500

    @app.get("/")
    def index():
        return render_template_string(HOME_TEMPLATE, totals=store.list_aggregated())

    @app.get("/register")
    def register_form():
        return _render_form(
            REGISTER_TEMPLATE, form={}, errors=[], action=url_for("register"), submit_label="Register"
        )

    @app.post("/register")
    def register():
        result = validate(request.form)
        if not result.ok:
            return _render_form(
                REGISTER_TEMPLATE,
                form=request.form,
                errors=result.errors,
                action=url_for("register"),
                submit_label="Register",
                status=400,
            )
        payment_id = store.create(result.record)
        app.logger.info("registered payment %s", payment_id)
        flash("Payment registered.")
        return redirect(url_for("table"))

    @app.post("/expenses")
    def expenses():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = request.form
        result = validate(data)
        if not result.ok:
            return jsonify({"errors": [e.to_dict() for e in result.errors]}), 400
        return jsonify({"message": "Validation passed."}), 200

    @app.get("/table")
    def table():
        return render_template_string(TABLE_TEMPLATE, payments=store.list_all())

    @app.get("/delete-confirm/<int:payment_id>")
    def delete_confirm(payment_id: int):
        try:
            item = store.get(payment_id)
        except NotFoundError:
            return "Payment not found.", 404
        return render_template_string(DELETE_CONFIRM_TEMPLATE, item=item)

    @app.post("/delete/<int:payment_id>")
    def delete(payment_id: int):
        app.logger.info("delete requested for payment %s", payment_id)
        if store.delete(payment_id):
            flash("Payment deleted.")
        else:
            flash("Payment not found.")
        return redirect(url_for("table"))

    @app.get("/edit/<int:payment_id>")
    def edit(payment_id: int):
        try:
            item = store.get(payment_id)
        except NotFoundError:
            return "Payment not found."
        return _render_form(
            EDIT_TEMPLATE,
            form=item.as_form(),
            errors=[],
            action=url_for("update", payment_id=payment_id),
            submit_label="Save",
            payment_id=payment_id,
        )

    @app.post("/update/<int:payment_id>")
    def update(payment_id: int):
        result = validate(request.form)
        if not result.ok:
            return _render_form(
                EDIT_TEMPLATE,
                form=request.form,
                errors=result.errors,
                action=url_for("update", payment_id=payment_id),
                submit_label="Save",
                status=400,
                payment_id=payment_id,
            )
        if store.update(payment_id, result.record):
            flash("Payment updated.")
        else:
            flash("Payment not found.")
        return redirect(url_for("table"))

    # Expose engine/store for tests
    app.config["_ENGINE"] = engine
    app.config["_STORE"] = store

    return app


# -----------------------------
# Dev server
# -----------------------------

def _port_from_env(default: int = DEFAULT_PORT) -> int:
    env_port = os.environ.get("PORT")
    if env_port:
        try:
            port = int(env_port)
            if 0 <= port <= 65535:
                return port
        except ValueError:
            pass
    return default


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Expense tracking web application.")
    parser.add_argument(
        "--database",
        help="SQLAlchemy database URL to use (defaults to a MySQL URL built from the DB_* env vars).",
    )
    parser.add_argument(
        "--host",
        help="Host interface for the development server. Defaults to HOST env var or 127.0.0.1.",
    )
    parser.add_argument(
        "--port",
        type=int,
        help=f"Port for the development server. Defaults to PORT env var or {DEFAULT_PORT}.",
    )
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        app = create_app(db_url=args.database)
    except ConfigError as e:
        print(f"[!] {e}. Set DB_HOST, DB_PORT, DB_USER, DB_PASSWORD and DB_NAME, or pass --database.")
        sys.exit(1)
    except StorageError as e:
        print(f"[!] Could not prepare the database: {e.__cause__ or e}")
        sys.exit(1)

    host = args.host or os.environ.get("HOST", "127.0.0.1")
    port = args.port if args.port is not None else _port_from_env()

    try:
        print(f"Server running on http://{host}:{port}")
        app.run(host=host, port=port, debug=False, use_reloader=False)
    finally:
        app.config["_ENGINE"].dispose()


if __name__ == "__main__":
    main()
