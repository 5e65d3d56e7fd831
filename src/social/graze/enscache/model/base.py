from sqlalchemy import String, Text, orm
from sqlalchemy.orm import mapped_column

from typing_extensions import Annotated

# ENS labels have no length limit, so names are stored unbounded.
ensname = Annotated[str, "ensname"]
addresspk = Annotated[str, mapped_column(String(42), primary_key=True)]


class Base(orm.DeclarativeBase):
    type_annotation_map = {
        ensname: Text(),
        addresspk: String(42),
    }
