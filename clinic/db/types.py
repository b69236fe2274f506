from datetime import datetime
from decimal import Decimal
from typing import Annotated

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import mapped_column

int_pk = Annotated[int, mapped_column(primary_key=True, autoincrement=True)]
dni_an = Annotated[str, mapped_column(String(8), index=True)]
room_an = Annotated[str, mapped_column(String(20))]
money_an = Annotated[Decimal, mapped_column(Numeric(10, 2))]
created_at_an = Annotated[datetime, mapped_column(DateTime, default=datetime.now)]
updated_at_an = Annotated[
    datetime,
    mapped_column(DateTime, default=datetime.now, onupdate=datetime.now),
]
