from printstore.schema.full_schema import ActivityLog


async def insert_activity_log(session, entry: dict) -> int:
    row = ActivityLog(
        actor_id=entry.get("actor_id"),
        action_type=entry["action_type"],
        entity_type=entry["entity_type"],
        entity_id=str(entry["entity_id"]),
        description=entry.get("description"),
        details=entry.get("details"),
    )
    session.add(row)
    await session.flush()
    return row.id
