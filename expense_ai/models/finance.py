"""
SQLAlchemy models for the financial history the pipeline reads.
"""
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text

from expense_ai.database import Base


class CategoryModel(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    icon = Column(String, nullable=False, default="")
    color = Column(String, nullable=False, default="#BDC3C7")
    is_default = Column(Boolean, nullable=False, default=False)


class ExpenseModel(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"))
    amount = Column(Float, nullable=False)
    description = Column(Text)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class BudgetModel(Base):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"))  # NULL = overall budget
    amount = Column(Float, nullable=False)
    period = Column(String, nullable=False, default="monthly")


class IncomeModel(Base):
    __tablename__ = "income"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    source = Column(String, nullable=False, default="other")
    amount = Column(Float, nullable=False)
    date = Column(Date, nullable=False)


class SavingsModel(Base):
    __tablename__ = "savings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    date = Column(Date, nullable=False)
