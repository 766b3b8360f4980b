"""Annotations, notes and sync offset persisted per media file."""

from typing import Any, Dict, List, Optional

import pydantic

from imusync.core import computations, config, exceptions, models
from imusync.io.storage import storage as kv_storage
from imusync.processing import synchronizer as sync

logger = config.get_logger()


class ProjectStore:
    """Live project state and its persistence under the media identity key.

    Every mutating operation saves the whole project, overwriting what was stored
    before. Loading replaces the live offset, annotations and notes; edits made
    since the media was loaded are not merged.
    """

    def __init__(
        self,
        storage: kv_storage.KeyValueStorage,
        synchronizer: sync.StreamSynchronizer,
        sample_rate_hz: float = 104.0,
    ) -> None:
        """Initialize a store without a media identity.

        Args:
            storage: Backend the projects are written to.
            synchronizer: Owner of the offset that is saved and restored.
            sample_rate_hz: Sample rate recorded in saved projects until samples at
                another rate are loaded.
        """
        self.storage = storage
        self.synchronizer = synchronizer
        self.default_sample_rate_hz = sample_rate_hz
        self.sample_rate_hz = sample_rate_hz
        self.identity: Optional[models.MediaIdentity] = None
        self.annotations: List[models.Annotation] = []
        self.notes = ""

    @property
    def key(self) -> Optional[str]:
        """Persistence key of the current media, or None if no media is known."""
        if self.identity is None:
            return None
        return self.identity.key

    def set_identity(self, identity: Optional[models.MediaIdentity]) -> None:
        """Key further saves and loads to the given media."""
        self.identity = identity

    def snapshot(self, extra: Optional[Dict[str, Any]] = None) -> models.Project:
        """The live state as a project.

        Args:
            extra: Additional project fields, e.g. the export file names. Keys may
                use either the camelCase or the snake_case field names.

        Returns:
            A new project with a fresh creation time.
        """
        return models.Project(
            sync_offset=self.synchronizer.offset,
            timestamps=list(self.annotations),
            sample_rate=self.sample_rate_hz,
            notes=self.notes,
            **(extra or {}),
        )

    def save(self, extra: Optional[Dict[str, Any]] = None) -> Optional[models.Project]:
        """Persist the live state, overwriting the stored project.

        Nothing is raised to the caller: without a media identity the save is
        skipped, and a storage failure is logged while the live state is kept.

        Args:
            extra: Additional project fields to store.

        Returns:
            The saved project, or None if nothing was saved.
        """
        key = self.key
        if key is None:
            logger.warning("No media loaded, project not saved.")
            return None

        project = self.snapshot(extra)
        try:
            self.storage.set(key, project.to_json_dict())
        except exceptions.StorageError:
            logger.warning("Could not save project %s, keeping changes in memory.", key)
            return None

        logger.debug("Project saved under %s.", key)
        return project

    def load(self, key: Optional[str] = None) -> Optional[models.Project]:
        """Replace the live state with a stored project.

        Args:
            key: The key to load. Defaults to the key of the current media.

        Returns:
            The loaded project, or None if nothing usable is stored under the key.
        """
        key = key if key is not None else self.key
        if key is None:
            return None

        data = self.storage.get(key)
        if data is None:
            return None

        try:
            project = parse_project(data, default_sample_rate=self.sample_rate_hz)
        except exceptions.FormatError:
            logger.warning("Ignoring unreadable project stored under %s.", key)
            return None

        self.apply(project)
        logger.info("Project loaded: offset %.3f s", project.sync_offset)
        return project

    def apply(self, project: models.Project) -> None:
        """Overwrite offset, annotations and notes with those of project."""
        self.synchronizer.restore(project.sync_offset)
        self.annotations = list(project.timestamps)
        self.notes = project.notes

    def apply_sync(self) -> float:
        """Apply the synchronizer marks and save.

        Returns:
            The new offset in seconds.

        Raises:
            PreconditionError: If either mark is missing.
        """
        offset = self.synchronizer.apply()
        self.save()
        return offset

    def add_annotation(
        self,
        time: float,
        label: str = "",
        event_type: str = "other",
        notes: str = "",
    ) -> models.Annotation:
        """Append an annotation and save.

        Args:
            time: The video time of the event in seconds.
            label: The label. A blank label is replaced by the formatted time.
            event_type: The kind of event.
            notes: Free-text notes on the event.

        Returns:
            The new annotation.
        """
        annotation = models.Annotation(
            time=time,
            label=label.strip() or computations.format_time(time),
            event_type=event_type or "other",
            notes=notes.strip(),
        )
        self.annotations.append(annotation)
        self.save()
        return annotation

    def delete_annotation(self, index: int) -> models.Annotation:
        """Remove the annotation at index and save.

        Args:
            index: Position in insertion order. Negative indices are not allowed.

        Returns:
            The removed annotation.

        Raises:
            AnnotationIndexError: If index is out of range.
        """
        if index < 0 or index >= len(self.annotations):
            raise exceptions.AnnotationIndexError(
                f"No annotation at index {index}; "
                f"{len(self.annotations)} annotation(s) stored."
            )
        annotation = self.annotations.pop(index)
        self.save()
        return annotation

    def set_notes(self, notes: str) -> None:
        """Replace the project notes and save."""
        self.notes = notes
        self.save()

    def reset(self) -> None:
        """Clear annotations and notes, and forget the media identity."""
        self.annotations = []
        self.notes = ""
        self.identity = None
        self.sample_rate_hz = self.default_sample_rate_hz


def parse_project(
    data: Any, default_sample_rate: Optional[float] = None
) -> models.Project:
    """Validate a deserialized project.

    Args:
        data: The decoded JSON document.
        default_sample_rate: Sample rate to assume when the document has none.

    Returns:
        The project.

    Raises:
        FormatError: If data is not a valid project.
    """
    if not isinstance(data, dict):
        raise exceptions.FormatError("Project metadata must be a JSON object.")

    if default_sample_rate is not None and "sampleRate" not in data:
        data = {**data, "sampleRate": default_sample_rate}

    try:
        return models.Project.model_validate(data)
    except pydantic.ValidationError as e:
        raise exceptions.FormatError(f"Invalid project metadata: {e}") from e
