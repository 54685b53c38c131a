"""Vehicle control board link, camera controls, media pipelines, system statistics and a UDP relay."""

__version__ = "0.1.0"