"""Fixed stage topology per upload category."""

from docflow.pipeline.models import StageName

CATEGORIES: tuple[str, ...] = ("receipt", "document")


def build_stage_list(category: str, *, tag_ids: list[int], note: str | None) -> list[str]:
    """Return the ordered stage names for a chain.

    Tagging runs only when the upload carried tags or a note.

    Raises:
        ValueError: if the category is not one the pipeline handles.
    """
    if category not in CATEGORIES:
        raise ValueError(f"Unknown upload category '{category}'. Choose from: {list(CATEGORIES)}")
    stages = [StageName.ANALYZE_FILE, StageName.PERSIST_ENTITY]
    if tag_ids or note:
        stages.append(StageName.APPLY_TAGS)
    stages.append(StageName.DELETE_WORKING_FILES)
    return [stage.value for stage in stages]
