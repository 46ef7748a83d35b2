"""Example usage of the monitor_table library."""

from monitor_table import LiteralType, LiteralValue, Table, TableRow


class Row(TableRow):
    def __init__(self, x: int) -> None:
        self.x = x

    @classmethod
    def schema(cls):
        # The table has only one column which stores integers and is called "x"
        return [("x", LiteralType.INT)]

    def fields(self):
        # Return values in a row
        return [LiteralValue.int(self.x)]


def bump(row: Row) -> None:
    row.x = 1


table = Table(Row)

# Add entries to the table
scope_1 = table.set_scope(Row(0))
scope_1.inspect_mut(bump)
scope_2 = table.set_scope(Row(0))

# Query the table
view = table.to_view("sort x")
assert str(view) == "x \n0 \n1 \n"
print(view, end="")

# Remove an entry from the table
scope_1.release()
view = table.to_view("")
assert str(view) == "x \n0 \n"
print(view, end="")

# Remove another entry from the table
del scope_2
view = table.to_view("")
assert str(view) == "x \n"
print(view, end="")
