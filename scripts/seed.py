"""Database seed script — creates tables and a sample workflow definition.

Run: python -m scripts.seed
"""

import asyncio

SAMPLE_WORKFLOW = "sample-greeting"


async def seed():
    """Seed the database with a sample workflow."""
    from core.logging_config import setup_logging
    from db.session import close_db, get_session_factory, init_db
    from services.workflow_service import WorkflowDefinitionService
    from steps.registry import get_step_registry
    from workflow.builder import WorkflowBuilder

    setup_logging()

    # Initialize DB tables
    await init_db()

    async with get_session_factory()() as db:
        existing = await WorkflowDefinitionService(db).get_by_name(SAMPLE_WORKFLOW)
        if existing:
            print(f"  Workflow exists: {existing.name} ({existing.id})")
        else:
            definition_id = await (
                WorkflowBuilder(registry=get_step_registry())
                .add_step("LogStep", "greet", 1, configuration={"message": "Hello from the workflow engine"})
                .add_step("DelayStep", "breathe", 2, configuration={"delay_seconds": 1})
                .add_step("LogStep", "farewell", 3, configuration={"message": "Goodbye", "level": "warning"})
                .save(db, SAMPLE_WORKFLOW, "Logs, waits a second, logs again")
            )
            print(f"  Created workflow: {SAMPLE_WORKFLOW} ({definition_id})")

    await close_db()

    print("\n✓ Seed complete!")


if __name__ == "__main__":
    asyncio.run(seed())
