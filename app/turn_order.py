"""
app/turn_order.py — Turn order for an initiative queue

Order is highest total (roll + bonus) first. Equal totals go to the higher
natural roll, the table convention of rewarding the unmodified die. Entries
that tie on both keep the order they were added in; the rules define no
further tie-break.
"""


def turn_order_key(entry):
    return (-entry.total_initiative, -entry.initiative_roll)


def sort_turn_order(entries):
    """Sort the active entries and number them 1..N.

    `entries` should be given in insertion order so exact ties stay put
    (sorted() is stable). Inactive entries are dropped and take no
    position. Sets order_position on each returned entry; calling this
    again on the result changes nothing.
    """
    ordered = sorted((e for e in entries if e.is_active), key=turn_order_key)
    for index, entry in enumerate(ordered):
        entry.order_position = index + 1
    return ordered
