"""Person detection and photo anonymization.

Two pipelines share this module:

- :class:`PersonDetectionPipeline` locates people in a photo and rates how
  identifiable they are.
- :class:`AnonymizationPipeline` assesses privacy risk, suggests settings for
  a sharing context, plans the masked areas and writes a compliance report.

When the model is unavailable, settings come from a fixed sharing-context
table (:data:`CONTEXT_SETTINGS`) and masked areas are still computed locally
from whatever persons the caller supplies.

Example:
    >>> pipeline = AnonymizationPipeline(client=None)
    >>> settings = pipeline.suggest_settings(photo, [], "public")
    >>> settings.mode, settings.blur_intensity, settings.child_protection
    (<AnonymizationMode.FULL: 'full'>, 9, True)
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from tripweave.ai.pipeline import GenerationPipeline, Invocation, PromptRequest
from tripweave.ai.prompts import (
    ANONYMIZATION_QUALITY_PROMPT,
    ANONYMIZATION_SETTINGS_PROMPT,
    PERSON_DETECTION_PROMPT,
    PRIVACY_REPORT_PROMPT,
    PRIVACY_RISK_PROMPT,
    describe_photo_context,
)
from tripweave.core.models import Photo, WireModel
from tripweave.core.normalize import (
    as_bool,
    as_dict,
    as_dict_list,
    as_enum,
    as_float,
    as_int,
    as_str,
    as_str_list,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================


class SharingContext(str, Enum):
    """Audience a photo is about to be shared with."""

    PRIVATE = "private"
    FAMILY = "family"
    FRIENDS = "friends"
    PUBLIC = "public"
    COMMERCIAL = "commercial"


class AnonymizationMode(str, Enum):
    FACE_ONLY = "face_only"
    PARTIAL = "partial"
    FULL = "full"
    SMART = "smart"


class MaskType(str, Enum):
    BLUR = "blur"
    PIXELATE = "pixelate"
    EMOJI = "emoji"
    SOLID = "solid"
    ARTISTIC = "artistic"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Result Models
# =============================================================================


class BoundingBox(WireModel):
    """Rectangle in percentages (0-100) of the image size."""

    x: float = 0.0
    y: float = 0.0
    width: float = 100.0
    height: float = 100.0


class BodyParts(WireModel):
    face: BoundingBox | None = None
    torso: BoundingBox | None = None
    hands: list[BoundingBox] = Field(default_factory=list)


class DetectedPerson(WireModel):
    """One person found in a photo. Never persisted by tripweave."""

    id: str
    bounding_box: BoundingBox = Field(default_factory=BoundingBox)
    confidence: float = 0.8
    is_child: bool = False
    estimated_age: int | None = None
    face_visible: bool = True
    body_parts: BodyParts = Field(default_factory=BodyParts)
    identification_risk: RiskLevel = RiskLevel.MEDIUM
    suggested_anonymization: list[str] = Field(default_factory=lambda: ["face_blur"])


class PersonDetectionResult(WireModel):
    photo_id: int
    persons: list[DetectedPerson] = Field(default_factory=list)
    total_persons: int = 0
    children_detected: int = 0
    high_risk_count: int = 0
    analyzed_at: datetime


class PrivacyRiskAssessment(WireModel):
    overall_risk: RiskLevel = RiskLevel.MEDIUM
    risks: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    compliance_issues: list[str] = Field(default_factory=list)


class CustomMasks(WireModel):
    type: MaskType = MaskType.BLUR
    color: str | None = None
    pattern: str | None = None


class AnonymizationSettings(WireModel):
    """How people in a photo should be masked.

    Attributes:
        mode: Which regions to mask.
        blur_intensity: 1 (light) to 10 (opaque).
        pixelation_level: 1-20, when pixelation is used.
        use_emoji_overlay: Cover faces with an emoji instead of blurring.
        preserve_artistic: Prefer softer masks that keep the composition.
        child_protection: Always fully mask children.
        whitelisted_faces: Person ids that stay visible.
        custom_masks: Mask style override.
    """

    mode: AnonymizationMode = AnonymizationMode.SMART
    blur_intensity: int = Field(default=7, ge=1, le=10)
    pixelation_level: int | None = Field(default=None, ge=1, le=20)
    use_emoji_overlay: bool = False
    preserve_artistic: bool = True
    child_protection: bool = True
    whitelisted_faces: list[str] = Field(default_factory=list)
    custom_masks: CustomMasks | None = None


class MaskedArea(WireModel):
    x: float
    y: float
    width: float
    height: float
    type: str


class AppliedAnonymization(WireModel):
    method: str
    areas: list[MaskedArea] = Field(default_factory=list)


class AnonymizationMetadata(WireModel):
    total_persons: int = 0
    children_detected: int = 0
    faces_anonymized: int = 0
    bodies_anonymized: int = 0


class AnonymizationResult(WireModel):
    processed_image_url: str
    original_image_url: str
    detected_persons: list[DetectedPerson] = Field(default_factory=list)
    anonymization_applied: AppliedAnonymization
    processing_time: int = 0
    quality_score: float = 0.85
    privacy_score: float = 0.90
    metadata: AnonymizationMetadata = Field(default_factory=AnonymizationMetadata)


class ComplianceStatus(WireModel):
    gdpr: bool = True
    ccpa: bool = True
    coppa: bool = True


class PrivacyReport(WireModel):
    report: str
    compliance: ComplianceStatus = Field(default_factory=ComplianceStatus)
    recommendations: list[str] = Field(default_factory=list)
    risk_mitigation: list[str] = Field(default_factory=list)


class PolicyRules(WireModel):
    anonymize_children: bool = True
    anonymize_adults: bool = False
    minimum_blur_level: int = 5
    allow_face_recognition: bool = True
    retain_original: bool = True
    share_with_third_parties: bool = False


class PrivacyPolicy(WireModel):
    id: str
    name: str
    description: str = ""
    rules: PolicyRules = Field(default_factory=PolicyRules)
    compliance: list[str] = Field(default_factory=list)


# =============================================================================
# Policy Tables
# =============================================================================


CONTEXT_SETTINGS: dict[SharingContext, tuple[AnonymizationMode, int]] = {
    SharingContext.PRIVATE: (AnonymizationMode.FACE_ONLY, 3),
    SharingContext.FAMILY: (AnonymizationMode.FACE_ONLY, 5),
    SharingContext.FRIENDS: (AnonymizationMode.SMART, 6),
    SharingContext.PUBLIC: (AnonymizationMode.FULL, 9),
    SharingContext.COMMERCIAL: (AnonymizationMode.FULL, 10),
}

# Used for a context outside the table
BASE_SETTINGS: tuple[AnonymizationMode, int] = (AnonymizationMode.SMART, 7)

UNCONFIGURED_RISKS = ["Unable to analyze privacy risks - AI not configured"]
UNCONFIGURED_REPORT = (
    "Privacy compliance analysis completed. "
    "AI integration required for detailed report generation."
)
FALLBACK_QUALITY_SCORE = 0.8
FALLBACK_PRIVACY_SCORE = 0.6

_IMAGE_EXTENSION = re.compile(r"\.(jpg|jpeg|png)$", re.IGNORECASE)


def default_privacy_policies() -> list[PrivacyPolicy]:
    """The four built-in policies, strictest last."""
    return [
        PrivacyPolicy(
            id="standard",
            name="Standard protection",
            description="Basic anonymization for everyday use",
            rules=PolicyRules(minimum_blur_level=5),
            compliance=["GDPR"],
        ),
        PrivacyPolicy(
            id="strict",
            name="Strict protection",
            description="Full anonymization for professional or public use",
            rules=PolicyRules(
                anonymize_adults=True,
                minimum_blur_level=8,
                allow_face_recognition=False,
                retain_original=False,
            ),
            compliance=["GDPR", "CCPA", "COPPA"],
        ),
        PrivacyPolicy(
            id="family",
            name="Family protection",
            description="Protection suited to sharing with family",
            rules=PolicyRules(minimum_blur_level=6),
            compliance=["GDPR", "COPPA"],
        ),
        PrivacyPolicy(
            id="public",
            name="Public protection",
            description="Maximum anonymization for public distribution",
            rules=PolicyRules(
                anonymize_adults=True,
                minimum_blur_level=10,
                allow_face_recognition=False,
                retain_original=False,
            ),
            compliance=["GDPR", "CCPA", "COPPA"],
        ),
    ]


def fallback_settings(context: SharingContext | str) -> AnonymizationSettings:
    """Settings from the sharing-context table, without a model."""
    mode, blur = BASE_SETTINGS
    key = _sharing_context(context)
    if key is not None:
        mode, blur = CONTEXT_SETTINGS[key]
    return AnonymizationSettings(mode=mode, blur_intensity=blur, child_protection=True)


# =============================================================================
# Local Computation
# =============================================================================


def compute_masked_areas(
    persons: list[DetectedPerson],
    settings: AnonymizationSettings,
) -> list[MaskedArea]:
    """Regions to mask for each person under the given settings.

    ``smart`` mode masks the whole body of high-risk persons and of children
    when child protection is on, and only the face of everybody else.
    Whitelisted persons are skipped unless child protection applies to them.
    """
    mask = settings.custom_masks.type.value if settings.custom_masks else MaskType.BLUR.value
    whitelisted = set(settings.whitelisted_faces)
    areas: list[MaskedArea] = []

    for person in persons:
        protected_child = person.is_child and settings.child_protection
        if person.id in whitelisted and not protected_child:
            continue

        face = person.body_parts.face
        if settings.mode is AnonymizationMode.FACE_ONLY:
            if face is not None:
                areas.append(_area(face, f"face_{mask}"))
        elif settings.mode is AnonymizationMode.FULL:
            areas.append(_area(person.bounding_box, f"full_{mask}"))
        elif settings.mode is AnonymizationMode.PARTIAL:
            if face is not None:
                areas.append(_area(face, f"face_{mask}"))
            if person.body_parts.torso is not None:
                areas.append(_area(person.body_parts.torso, f"torso_{mask}"))
        elif person.identification_risk is RiskLevel.HIGH or protected_child:
            areas.append(_area(person.bounding_box, "full_blur"))
        elif person.face_visible and face is not None:
            areas.append(_area(face, "face_blur"))

    return areas


def anonymized_url(url: str) -> str:
    """``/uploads/a.jpg`` -> ``/uploads/a_anonymized.jpg`` (jpg/jpeg/png only)."""
    return _IMAGE_EXTENSION.sub(lambda m: f"_anonymized{m.group(0)}", url)


def _sharing_context(value: SharingContext | str) -> SharingContext | None:
    try:
        return SharingContext(str(getattr(value, "value", value)).strip().lower())
    except ValueError:
        return None


def _area(box: BoundingBox, kind: str) -> MaskedArea:
    return MaskedArea(x=box.x, y=box.y, width=box.width, height=box.height, type=kind)


def _persons_json(persons: list[DetectedPerson]) -> str:
    if not persons:
        return "No persons detected."
    return json.dumps([p.to_dict() for p in persons])


# =============================================================================
# Response Parsing
# =============================================================================


def _parse_box(value: Any, default: BoundingBox | None) -> BoundingBox | None:
    data = as_dict(value)
    if not data:
        return default
    return BoundingBox(
        x=as_float(data.get("x"), 0.0, 0.0, 100.0),
        y=as_float(data.get("y"), 0.0, 0.0, 100.0),
        width=as_float(data.get("width"), 100.0, 0.0, 100.0),
        height=as_float(data.get("height"), 100.0, 0.0, 100.0),
    )


def parse_person(raw: dict[str, Any], index: int) -> DetectedPerson:
    """Normalise one person entry; ids are assigned by position."""
    parts = as_dict(raw.get("bodyParts"))
    hands = [_parse_box(h, None) for h in as_dict_list(parts.get("hands"))]
    age = as_float(raw.get("estimatedAge"), -1.0)

    return DetectedPerson(
        id=f"person_{index + 1}",
        bounding_box=_parse_box(raw.get("boundingBox"), BoundingBox()),
        confidence=as_float(raw.get("confidence"), 0.8, 0.0, 1.0),
        is_child=as_bool(raw.get("isChild"), False),
        estimated_age=int(age) if age >= 0 else None,
        face_visible=as_bool(raw.get("faceVisible"), True),
        body_parts=BodyParts(
            face=_parse_box(parts.get("face"), None),
            torso=_parse_box(parts.get("torso"), None),
            hands=[h for h in hands if h is not None],
        ),
        identification_risk=as_enum(raw.get("identificationRisk"), RiskLevel, RiskLevel.MEDIUM),
        suggested_anonymization=as_str_list(raw.get("suggestedAnonymization")) or ["face_blur"],
    )


def parse_settings(data: dict[str, Any]) -> AnonymizationSettings:
    masks = as_dict(data.get("customMasks"))
    pixelation = as_int(data.get("pixelationLevel"), 0, 0, 20)
    return AnonymizationSettings(
        mode=as_enum(data.get("mode"), AnonymizationMode, AnonymizationMode.SMART),
        blur_intensity=as_int(data.get("blurIntensity"), 7, 1, 10),
        pixelation_level=pixelation or None,
        use_emoji_overlay=as_bool(data.get("useEmojiOverlay"), False),
        preserve_artistic=as_bool(data.get("preserveArtistic"), True),
        child_protection=as_bool(data.get("childProtection"), True),
        whitelisted_faces=as_str_list(data.get("whitelistedFaces")),
        custom_masks=CustomMasks(
            type=as_enum(masks.get("type"), MaskType, MaskType.BLUR),
            color=as_str(masks.get("color"), "#000000") if masks else "#000000",
            pattern=as_str(masks.get("pattern")) or None,
        ),
    )


# =============================================================================
# Pipelines
# =============================================================================


class PersonDetectionPipeline(GenerationPipeline):
    """Find people in a photo.

    Detection needs the image itself; without an image loader (or when the
    file cannot be read) the result is an empty detection.
    """

    name = "person_detection"

    def detect(self, photo: Photo) -> PersonDetectionResult:
        def assemble() -> PromptRequest | None:
            image = self.load_image(photo)
            if image is None:
                return None
            return self.build_request(
                PERSON_DETECTION_PROMPT,
                images=[image],
                photo_context=describe_photo_context(photo),
            )

        def parse(invocation: Invocation) -> PersonDetectionResult:
            raw = as_dict_list(invocation.payload().get("persons"))
            return self._result(photo, [parse_person(p, i) for i, p in enumerate(raw)])

        return self.run_step("detect", assemble, parse, lambda: self._result(photo, []))

    def _result(self, photo: Photo, persons: list[DetectedPerson]) -> PersonDetectionResult:
        return PersonDetectionResult(
            photo_id=photo.id,
            persons=persons,
            total_persons=len(persons),
            children_detected=sum(1 for p in persons if p.is_child),
            high_risk_count=sum(1 for p in persons if p.identification_risk is RiskLevel.HIGH),
            analyzed_at=self.now(),
        )


class AnonymizationPipeline(GenerationPipeline):
    """Privacy risk, settings suggestion, masking plan and compliance report."""

    name = "anonymization"

    def analyze_risks(
        self,
        photo: Photo,
        persons: list[DetectedPerson],
    ) -> PrivacyRiskAssessment:
        def assemble() -> PromptRequest:
            image = self.load_image(photo)
            return self.build_request(
                PRIVACY_RISK_PROMPT,
                images=[image] if image else None,
                photo_context=describe_photo_context(photo),
                persons_summary=_persons_json(persons),
            )

        def parse(invocation: Invocation) -> PrivacyRiskAssessment:
            data = invocation.payload()
            return PrivacyRiskAssessment(
                overall_risk=as_enum(data.get("overallRisk"), RiskLevel, RiskLevel.MEDIUM),
                risks=as_str_list(data.get("risks")),
                recommendations=as_str_list(data.get("recommendations")),
                compliance_issues=as_str_list(data.get("complianceIssues")),
            )

        def fallback() -> PrivacyRiskAssessment:
            return PrivacyRiskAssessment(
                risks=list(UNCONFIGURED_RISKS),
                recommendations=["Manual review recommended"],
            )

        return self.run_step("analyze_risks", assemble, parse, fallback)

    def suggest_settings(
        self,
        photo: Photo | None,
        persons: list[DetectedPerson],
        context: SharingContext | str,
    ) -> AnonymizationSettings:
        """Recommend settings for sharing a photo with ``context``.

        ``photo`` may be None when settings are wanted for an audience
        rather than a particular picture. When given, its details and image
        go into the prompt. Without a model the result comes straight from
        :data:`CONTEXT_SETTINGS`.
        """
        context_value = getattr(context, "value", context)

        def assemble() -> PromptRequest:
            image = self.load_image(photo) if photo is not None else None
            return self.build_request(
                ANONYMIZATION_SETTINGS_PROMPT,
                images=[image] if image else None,
                sharing_context=context_value,
                persons_summary=_persons_json(persons),
                photo_context=describe_photo_context(photo) if photo is not None else "Not provided",
            )

        def parse(invocation: Invocation) -> AnonymizationSettings:
            return parse_settings(invocation.payload())

        return self.run_step(
            "suggest_settings", assemble, parse, lambda: fallback_settings(context)
        )

    def apply(
        self,
        photo: Photo,
        persons: list[DetectedPerson],
        settings: AnonymizationSettings,
    ) -> AnonymizationResult:
        """Plan the anonymization of ``photo``.

        Masked areas are always computed locally; the model only scores the
        plan. Pixel processing itself is left to the caller.
        """
        started = self.now()
        areas = compute_masked_areas(persons, settings)

        def assemble() -> PromptRequest:
            return self.build_request(
                ANONYMIZATION_QUALITY_PROMPT,
                settings=settings.to_json(),
                persons_summary=_persons_json(persons),
                areas=json.dumps([a.to_dict() for a in areas]),
            )

        def parse(invocation: Invocation) -> AnonymizationResult:
            data = invocation.payload()
            return self._result(
                photo,
                persons,
                settings,
                areas,
                started,
                quality=as_float(data.get("qualityScore"), 0.85, 0.0, 1.0),
                privacy=as_float(data.get("privacyScore"), 0.90, 0.0, 1.0),
            )

        def fallback() -> AnonymizationResult:
            return self._result(
                photo,
                persons,
                settings,
                areas,
                started,
                quality=FALLBACK_QUALITY_SCORE,
                privacy=FALLBACK_PRIVACY_SCORE,
            )

        return self.run_step("apply", assemble, parse, fallback)

    def generate_report(
        self,
        photo: Photo,
        result: AnonymizationResult,
        policy: PrivacyPolicy | None = None,
    ) -> PrivacyReport:
        policy = policy or default_privacy_policies()[0]

        def assemble() -> PromptRequest:
            return self.build_request(
                PRIVACY_REPORT_PROMPT,
                result_summary=result.to_json(),
                policy_summary=policy.to_json(),
            )

        def parse(invocation: Invocation) -> PrivacyReport:
            data = invocation.payload()
            compliance = as_dict(data.get("compliance"))
            return PrivacyReport(
                report=as_str(data.get("report")) or "Privacy report generated successfully",
                compliance=ComplianceStatus(
                    gdpr=as_bool(compliance.get("gdpr"), True),
                    ccpa=as_bool(compliance.get("ccpa"), True),
                    coppa=as_bool(compliance.get("coppa"), True),
                ),
                recommendations=as_str_list(data.get("recommendations")),
                risk_mitigation=as_str_list(data.get("riskMitigation")),
            )

        def fallback() -> PrivacyReport:
            return PrivacyReport(
                report=UNCONFIGURED_REPORT,
                recommendations=["Consider enabling AI analysis for enhanced privacy reporting"],
                risk_mitigation=["Basic anonymization applied", "Manual review recommended"],
            )

        logger.debug(f"Privacy report for photo {photo.id} under policy '{policy.id}'")
        return self.run_step("report", assemble, parse, fallback)

    def _result(
        self,
        photo: Photo,
        persons: list[DetectedPerson],
        settings: AnonymizationSettings,
        areas: list[MaskedArea],
        started: datetime,
        quality: float,
        privacy: float,
    ) -> AnonymizationResult:
        elapsed = self.now() - started
        return AnonymizationResult(
            processed_image_url=anonymized_url(photo.url),
            original_image_url=photo.url,
            detected_persons=list(persons),
            anonymization_applied=AppliedAnonymization(method=settings.mode.value, areas=areas),
            processing_time=max(0, int(elapsed.total_seconds() * 1000)),
            quality_score=quality,
            privacy_score=privacy,
            metadata=AnonymizationMetadata(
                total_persons=len(persons),
                children_detected=sum(1 for p in persons if p.is_child),
                faces_anonymized=sum(1 for a in areas if a.type.startswith("face_")),
                bodies_anonymized=sum(1 for a in areas if a.type.startswith(("full_", "torso_"))),
            ),
        )
