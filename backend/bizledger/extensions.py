# Overview: Shared Flask extension instances (fact store session and schema migrations).

from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# One session per app context; worker threads push their own context
db = SQLAlchemy()
migrate = Migrate()
