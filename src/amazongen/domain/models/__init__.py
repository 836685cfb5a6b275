from src.amazongen.domain.models.generated_image import GeneratedImage
from src.amazongen.domain.models.generation_task import GenerationTask
from src.amazongen.domain.models.history import HistoryEntry, HistoryPage
from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.domain.models.model_ref import MODEL_CATALOGUE, ModelOption, ModelRef, Provider
from src.amazongen.domain.models.product_spec import ProductSpecification
from src.amazongen.domain.models.task_state import TaskState

__all__ = [
    "GenerationTask",
    "TaskState",
    "GeneratedImage",
    "HistoryEntry",
    "HistoryPage",
    "ProductMask",
    "SceneDefinition",
    "ModelRef",
    "ModelOption",
    "Provider",
    "MODEL_CATALOGUE",
    "ProductSpecification",
]
