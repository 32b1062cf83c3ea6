"""
extensions.py — Flask extension singletons.

The storage handle (`db`) is created here with no app attached and bound in
create_app() via init_app(). Services never reach for it: routes pass
`db.session` into every service call as an explicit argument.

    from groupledger.app.extensions import db, ma

Schema inheritance rule:
  Input validation schemas (app/schemas/*_schema.py) inherit marshmallow.Schema
  directly so unit tests can load them without an application context.
  Only the response schemas in app/schemas/responses.py use ma.Schema; they
  are dumped inside a request, where an app context always exists.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

ma = Marshmallow()
