"""Built-in collaboration templates, served when the templates collection is empty."""

from __future__ import annotations

from typing import List, Optional

from .models import (
    CollaborationTemplate,
    FieldValidation,
    TemplateField,
    TemplateFieldType,
    TemplateStep,
)

INSTRUMENT_OPTIONS = [
    "Vocals",
    "Guitar",
    "Piano",
    "Drums",
    "Bass",
    "Violin",
    "Saxophone",
    "Trumpet",
    "Flute",
    "Clarinet",
    "Cello",
    "Viola",
    "Harp",
    "Accordion",
    "Harmonica",
    "Ukulele",
    "Banjo",
    "Mandolin",
    "Other",
]
PRIVACY_OPTIONS = ["Public", "Private", "Invite Only"]
COMPENSATION_OPTIONS = ["Free", "Paid", "Revenue Share", "Exposure"]
LOCATION_OPTIONS = ["Online", "Offline", "Hybrid"]

_TITLE_LENGTH = FieldValidation(min_length=5, max_length=100)
_DESCRIPTION_LENGTH = FieldValidation(min_length=20, max_length=1000)


def _field(
    field_id: str,
    label: str,
    field_type: TemplateFieldType,
    required: bool = False,
    placeholder: Optional[str] = None,
    options: Optional[List[str]] = None,
    validation: Optional[FieldValidation] = None,
) -> TemplateField:
    return TemplateField(
        id=field_id,
        label=label,
        type=field_type,
        required=required,
        placeholder=placeholder,
        options=options,
        validation=validation,
    )


def _basic_info(noun: str, title_label: str, title_hint: str, description_label: str,
                description_hint: str, genres: List[str]) -> TemplateStep:
    return TemplateStep(
        id="basic-info",
        title="Basic Information",
        description=f"Set up the basic details of your {noun}",
        order=1,
        fields=[
            _field("title", title_label, TemplateFieldType.TEXT, True, title_hint,
                   validation=_TITLE_LENGTH),
            _field("description", description_label, TemplateFieldType.TEXTAREA, True,
                   description_hint, validation=_DESCRIPTION_LENGTH),
            _field("genre", "Genre", TemplateFieldType.SELECT, True, options=genres),
        ],
    )


def _max_participants(limit: int) -> TemplateField:
    return _field(
        "maxParticipants",
        "Maximum Participants",
        TemplateFieldType.NUMBER,
        placeholder="Leave empty for unlimited",
        validation=FieldValidation(min=1, max=limit),
    )


def _settings(order: int, title: str, description: str, compensation: bool = True) -> TemplateStep:
    fields = [_field("privacy", "Privacy Setting", TemplateFieldType.SELECT, True,
                     options=PRIVACY_OPTIONS)]
    if compensation:
        fields.append(_field("compensation", "Compensation Type", TemplateFieldType.SELECT,
                             True, options=COMPENSATION_OPTIONS))
    fields.append(_field("location", "Location Type", TemplateFieldType.SELECT, True,
                         options=LOCATION_OPTIONS))
    return TemplateStep(id="settings", title=title, description=description, order=order,
                        fields=fields)


def _date_range(order: int, noun: str, extra: Optional[List[TemplateField]] = None) -> TemplateStep:
    fields = [
        _field("startDate", "Start Date", TemplateFieldType.DATE, True),
        _field("endDate", "End Date (Optional)", TemplateFieldType.DATE),
    ]
    return TemplateStep(
        id="timeline",
        title="Timeline & Milestones",
        description=f"Set up the timeline and key milestones for your {noun}",
        order=order,
        fields=fields + (extra or []),
    )


def _cover_song() -> CollaborationTemplate:
    return CollaborationTemplate(
        id="cover-song",
        name="Cover Song Collaboration",
        description="Create a cover version of a popular song with multiple musicians",
        category="Cover",
        is_popular=True,
        steps=[
            _basic_info(
                "collaboration",
                "Collaboration Title",
                'e.g., "We Are The World" Cover Collaboration',
                "Description",
                "Describe your collaboration idea, goals, and vision...",
                ["Pop", "Rock", "Jazz", "Classical", "Hip Hop", "Country", "Electronic",
                 "Folk", "R&B", "Blues", "Reggae", "World Music", "Other"],
            ),
            TemplateStep(
                id="instruments",
                title="Required Instruments",
                description="Specify which instruments you need for this collaboration",
                order=2,
                fields=[
                    _field("instruments", "Instruments Needed", TemplateFieldType.MULTISELECT,
                           True, options=INSTRUMENT_OPTIONS),
                    _max_participants(50),
                ],
            ),
            _date_range(3, "collaboration", [
                _field("requirements", "Requirements & Expectations",
                       TemplateFieldType.TEXTAREA,
                       placeholder="List any specific requirements, skill levels, or "
                       "expectations for participants..."),
            ]),
            TemplateStep(
                id="attachments",
                title="Reference Materials",
                description="Upload reference materials like original songs, sheet music, "
                "or inspiration",
                order=4,
                is_required=False,
                fields=[
                    _field("attachments", "Upload Files", TemplateFieldType.FILE,
                           placeholder="Upload audio files, sheet music, or reference materials"),
                    _field("referenceLinks", "Reference Links", TemplateFieldType.TEXT,
                           placeholder="Add YouTube, Facebook, Spotify, or other reference "
                           "links (one per line)"),
                ],
            ),
            _settings(5, "Collaboration Settings",
                      "Configure privacy, compensation, and other settings"),
        ],
    )


def _original_composition() -> CollaborationTemplate:
    return CollaborationTemplate(
        id="original-composition",
        name="Original Composition",
        description="Create an original piece of music from scratch",
        category="Original",
        is_popular=True,
        steps=[
            _basic_info(
                "original composition",
                "Composition Title",
                'e.g., "Symphony of Dreams" Original Composition',
                "Concept & Vision",
                "Describe your musical concept, inspiration, and artistic vision...",
                ["Classical", "Jazz", "Contemporary", "Fusion", "Experimental", "Film Score",
                 "Orchestral", "Chamber Music", "Solo", "Other"],
            ),
            TemplateStep(
                id="instruments",
                title="Required Instruments",
                description="Specify which instruments you need for this composition",
                order=2,
                fields=[
                    _field("instruments", "Instruments Needed", TemplateFieldType.MULTISELECT,
                           True, options=INSTRUMENT_OPTIONS),
                ],
            ),
            TemplateStep(
                id="structure",
                title="Musical Structure",
                description="Define the structure and sections of your composition",
                order=3,
                is_required=False,
                fields=[
                    _field("structure", "Musical Structure", TemplateFieldType.TEXTAREA,
                           placeholder="Describe the structure (e.g., Intro, Verse, Chorus, "
                           "Bridge, Outro) or leave blank for free-form..."),
                ],
            ),
            _date_range(4, "composition"),
            _settings(5, "Collaboration Settings",
                      "Configure privacy, compensation, and other settings"),
        ],
    )


def _jam_session() -> CollaborationTemplate:
    return CollaborationTemplate(
        id="jam-session",
        name="Jam Session",
        description="Organize an impromptu or structured jam session",
        category="Jam",
        is_popular=True,
        steps=[
            _basic_info(
                "jam session",
                "Jam Session Title",
                'e.g., "Jazz Fusion Jam Session"',
                "Session Description",
                "Describe the jam session style, vibe, and what to expect...",
                ["Jazz", "Blues", "Rock", "Funk", "Fusion", "Latin", "World Music",
                 "Electronic", "Acoustic", "Experimental", "Other"],
            ),
            TemplateStep(
                id="instruments",
                title="Open to All Instruments",
                description="Specify which instruments are welcome",
                order=2,
                fields=[
                    _field("instruments", "Instruments Welcome", TemplateFieldType.MULTISELECT,
                           True, options=["All Instruments"] + INSTRUMENT_OPTIONS),
                    _max_participants(100),
                ],
            ),
            TemplateStep(
                id="schedule",
                title="Schedule & Duration",
                description="Set the schedule and duration of the jam session",
                order=3,
                fields=[
                    _field("startDate", "Start Date & Time", TemplateFieldType.DATE, True),
                    _field("duration", "Duration (hours)", TemplateFieldType.NUMBER, True,
                           validation=FieldValidation(min=1, max=24)),
                ],
            ),
            _settings(4, "Jam Session Settings", "Configure privacy and other settings",
                      compensation=False),
        ],
    )


def default_templates() -> List[CollaborationTemplate]:
    """Fresh copies of the built-in templates."""
    return [_cover_song(), _original_composition(), _jam_session()]
