"""
Species Core - Target species configuration.

Target species live in a YAML file next to the other runtime data. The file
is created with the default fruit fly set on first use, and edits to it are
picked up on the next snapshot. Callers always receive an immutable snapshot,
so prompt generation never observes a half-edited configuration.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_REPORTING_PHONE = "0800 80 99 66"

_MPI_THREATS_URL = (
    "https://www.mpi.govt.nz/biosecurity/pest-and-disease-threats-to-new-zealand/"
    "horticultural-pest-and-disease-threats-to-new-zealand"
)


@dataclass(frozen=True)
class TargetSpecies:
    """A regulated species the biosecurity prompt screens for."""

    common_name: str
    scientific_name: str
    alert_threshold: int = 2
    matching_criteria: tuple[str, ...] = field(default_factory=tuple)
    exclusion_criteria: tuple[str, ...] = field(default_factory=tuple)
    recent_detections: str = ""
    abbreviation: str = ""
    threat_level: str = "high"
    primary_hosts: tuple[str, ...] = field(default_factory=tuple)
    info_url: str = ""
    reporting_phone: str = DEFAULT_REPORTING_PHONE
    sort_order: int = 0
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("matching_criteria", "exclusion_criteria", "primary_hosts"):
            data[key] = list(data[key])
        return data


DEFAULT_SPECIES: tuple[TargetSpecies, ...] = (
    TargetSpecies(
        common_name="Queensland Fruit Fly",
        scientific_name="Bactrocera tryoni",
        abbreviation="QFly",
        alert_threshold=2,
        matching_criteria=(
            "Body size ~7mm (smaller than housefly)",
            "Reddish-brown coloring with distinctive yellow markings",
            "Clear wings with dark brown costal band",
            "Yellow scutellum - KEY FEATURE",
            "Wasp-like narrow waist",
            "Abdomen with yellow and brown banding",
        ),
        exclusion_criteria=(
            "Metallic blue/green coloring (blow fly)",
            "Much larger than 7mm (house fly)",
            "Grey body color",
        ),
        recent_detections="Mt Roskill, Auckland",
        threat_level="critical",
        primary_hosts=("stone fruit", "citrus", "tomatoes", "peppers"),
        info_url=f"{_MPI_THREATS_URL}/queensland-fruit-fly",
        sort_order=1,
    ),
    TargetSpecies(
        common_name="Oriental Fruit Fly",
        scientific_name="Bactrocera dorsalis",
        abbreviation="OFF",
        alert_threshold=2,
        matching_criteria=(
            "Body size ~8mm (slightly larger than Queensland Fruit Fly)",
            "Mostly dark/black thorax with yellow markings",
            "Clear wings with dark costal band",
            'Distinct dark "T" shaped marking on abdomen',
            "Yellow scutellum",
            "Yellow lateral stripes on thorax",
        ),
        exclusion_criteria=(
            "Metallic blue/green coloring",
            "Grey body without yellow markings",
            "No wing markings",
        ),
        threat_level="critical",
        primary_hosts=("mango", "papaya", "citrus", "stone fruit"),
        info_url=_MPI_THREATS_URL,
        sort_order=2,
    ),
    TargetSpecies(
        common_name="Spotted-wing Drosophila",
        scientific_name="Drosophila suzukii",
        abbreviation="SWD",
        alert_threshold=2,
        matching_criteria=(
            "Small body ~2-3mm (vinegar fly size)",
            "Males: distinctive dark spot on each wing - KEY FEATURE",
            "Light brown/tan body with red eyes",
            "Attacks FRESH soft fruit (unlike other vinegar flies)",
            "Females: large serrated ovipositor",
            "Found on berries, cherries, grapes, stone fruit",
        ),
        exclusion_criteria=(
            "No wing spots (common vinegar fly)",
            "Attacks only rotting fruit",
            "Much larger than 3mm",
        ),
        threat_level="high",
        primary_hosts=("berries", "cherries", "grapes", "stone fruit"),
        info_url=_MPI_THREATS_URL,
        sort_order=3,
    ),
)


def get_species_config_path(config_path: str | None = None) -> Path:
    """Returns the path to the species YAML file."""
    if config_path:
        return Path(config_path)
    from config import get_config

    return Path(get_config()["SPECIES_CONFIG_PATH"])


def _string_tuple(value) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if item is not None and str(item).strip())


def species_from_dict(entry: dict[str, Any]) -> TargetSpecies:
    """
    Builds a TargetSpecies from a YAML mapping.

    Raises:
        ValueError: if a required name is missing or a number is malformed.
    """
    common_name = str(entry.get("common_name") or "").strip()
    scientific_name = str(entry.get("scientific_name") or "").strip()
    if not common_name or not scientific_name:
        raise ValueError("common_name and scientific_name are required")

    return TargetSpecies(
        common_name=common_name,
        scientific_name=scientific_name,
        alert_threshold=int(entry.get("alert_threshold", 2)),
        matching_criteria=_string_tuple(entry.get("matching_criteria")),
        exclusion_criteria=_string_tuple(entry.get("exclusion_criteria")),
        recent_detections=str(entry.get("recent_detections") or ""),
        abbreviation=str(entry.get("abbreviation") or ""),
        threat_level=str(entry.get("threat_level") or "high"),
        primary_hosts=_string_tuple(entry.get("primary_hosts")),
        info_url=str(entry.get("info_url") or ""),
        reporting_phone=str(entry.get("reporting_phone") or DEFAULT_REPORTING_PHONE),
        sort_order=int(entry.get("sort_order", 0)),
        is_active=bool(entry.get("is_active", True)),
    )


def save_species_yaml(species, config_path: str | None = None) -> None:
    """Writes the given species list to the YAML file."""
    path = get_species_config_path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"species": [s.to_dict() for s in species]}
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=False, allow_unicode=True)


def load_species_yaml(config_path: str | None = None) -> list[dict[str, Any]]:
    """Loads raw species entries from YAML; seeds the defaults if missing."""
    path = get_species_config_path(config_path)
    if not path.exists():
        logger.info(f"Species config not found, seeding defaults at {path}")
        save_species_yaml(DEFAULT_SPECIES, config_path)

    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return []
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        logger.error(f"Species config {path} is not valid YAML: {e}")
        return []

    entries = data.get("species") if isinstance(data, dict) else None
    return entries if isinstance(entries, list) else []


def get_species_snapshot(config_path: str | None = None) -> tuple[TargetSpecies, ...]:
    """
    Returns an immutable snapshot of all configured species.

    Entries are sorted by sort_order. Malformed entries are skipped with a
    warning rather than failing the whole configuration.
    """
    species = []
    for index, entry in enumerate(load_species_yaml(config_path)):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping species entry {index}: not a mapping")
            continue
        try:
            species.append(species_from_dict(entry))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping species entry {index}: {e}")

    return tuple(sorted(species, key=lambda s: s.sort_order))


def active_species(snapshot) -> tuple[TargetSpecies, ...]:
    """Filters a snapshot down to the active species."""
    return tuple(s for s in snapshot if s.is_active)
