"""DICOM upload handling.

Only the preamble is checked (``DICM`` magic at byte 128); the metadata of
a stored study is generated rather than parsed from the file.
"""
import logging
import uuid

from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hms.models import ImagingStudy, RadiologyTest

logger = logging.getLogger(__name__)

PREAMBLE_LENGTH = 128
MAGIC = b'DICM'


def is_dicom(data: bytes) -> bool:
    return len(data) >= PREAMBLE_LENGTH + len(MAGIC) and data[PREAMBLE_LENGTH:PREAMBLE_LENGTH + 4] == MAGIC


def generate_uid() -> str:
    # UUID derived UID under the 2.25 root
    return f"2.25.{uuid.uuid4().int}"


def mock_metadata(test: RadiologyTest | None = None) -> dict:
    modality = (test.modality if test and test.modality else 'CT')
    body_part = (test.body_part if test and test.body_part else 'CHEST')
    return {
        'studyInstanceUID': generate_uid(),
        'seriesInstanceUID': generate_uid(),
        'sopInstanceUID': generate_uid(),
        'modality': modality,
        'bodyPart': body_part,
        'studyDate': timezone.now().strftime('%Y%m%d'),
        'rows': 512,
        'columns': 512,
        'bitsAllocated': 16,
        'photometricInterpretation': 'MONOCHROME2',
        'windowCenter': 400,
        'windowWidth': 800,
    }


def store_upload(actor, test: RadiologyTest, upload) -> ImagingStudy:
    """Validate an uploaded file and record it as an imaging study."""
    data = upload.read()
    if not is_dicom(data):
        raise ValidationError('Invalid DICOM file')
    meta = mock_metadata(test)
    study = ImagingStudy.objects.create(
        radiology_test=test,
        study_instance_uid=meta['studyInstanceUID'],
        series_instance_uid=meta['seriesInstanceUID'],
        sop_instance_uid=meta['sopInstanceUID'],
        modality=meta['modality'],
        body_part=meta['bodyPart'],
        file_name=getattr(upload, 'name', '') or '',
        file_size=len(data),
        metadata=meta,
        uploaded_by=actor,
    )
    logger.info('Stored DICOM study %s for radiology test %s', study.study_instance_uid, test.id)
    return study


def format_study(s: ImagingStudy) -> dict:
    return {
        'id': s.id,
        'radiologyTestId': s.radiology_test_id,
        'studyInstanceUID': s.study_instance_uid,
        'seriesInstanceUID': s.series_instance_uid,
        'sopInstanceUID': s.sop_instance_uid,
        'modality': s.modality,
        'bodyPart': s.body_part,
        'studyDate': s.study_date.isoformat(),
        'fileName': s.file_name,
        'fileSize': s.file_size,
        'metadata': s.metadata,
    }
