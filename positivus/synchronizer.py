"""Keep the editor's in-memory row list in step with completed gateway writes.

Each function returns a new list and never mutates its input, so a caller
that hits a gateway failure simply keeps the list it already had.
"""


def apply_insert(items, row):
    """Append the row the gateway returned (it owns id and timestamps)."""
    return list(items) + [dict(row)]


def apply_update(items, row_id, patch, now):
    updated = []
    for item in items:
        if item.get('id') == row_id:
            item = dict(item)
            item.update(patch)
            item['updated_at'] = now
        updated.append(item)
    return updated


def apply_delete(items, row_id, selected_id):
    """Drop ``row_id``; if it was selected, select the new first row (or nothing)."""
    remaining = [item for item in items if item.get('id') != row_id]
    if selected_id == row_id:
        selected_id = remaining[0]['id'] if remaining else None
    return remaining, selected_id
