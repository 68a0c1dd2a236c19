# Overview: Flask extension instances for the purchasing store and its migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
