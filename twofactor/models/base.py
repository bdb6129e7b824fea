from sqlalchemy.orm import declarative_base

# Shared declarative base for all two-factor tables
Base = declarative_base()
