from typing import Dict, List
from fitslot.database import Database
from fitslot.errors import NotFoundError, ValidationError
from fitslot.models import SlotTemplate, TemplateSlot
from fitslot.utils.timeutils import parse_time, minutes_between
from fitslot.utils.validators import validate_time_range, validate_slot_duration
from fitslot.utils.logger import get_logger

logger = get_logger(__name__)


class TemplateService:
    """Weekly slot templates"""

    def __init__(self, database: Database):
        self.database = database

    def list_templates(self, active_only: bool = False) -> List[Dict]:
        with self.database.session() as db:
            query = db.query(SlotTemplate)
            if active_only:
                query = query.filter(SlotTemplate.is_active.is_(True))
            return [t.to_dict() for t in query.order_by(SlotTemplate.name, SlotTemplate.id).all()]

    def get_template(self, template_id: int) -> Dict:
        with self.database.session() as db:
            return self._get(db, template_id).to_dict()

    def create_template(self, name: str, slots: List[Dict], admin_id: int = None) -> Dict:
        if not name:
            raise ValidationError('Template name is required')
        definitions = [self._parse_slot(s) for s in slots or []]

        with self.database.session() as db:
            template = SlotTemplate(name=name, admin_id=admin_id, is_active=True)
            template.slots = [TemplateSlot(**d) for d in definitions]
            db.add(template)
            db.flush()
            logger.info(f"Template {template.id} '{name}' created with {len(definitions)} slots")
            return template.to_dict()

    def update_template(self, template_id: int, name: str = None, is_active: bool = None,
                        slots: List[Dict] = None) -> Dict:
        """Slots, when given, replace every existing definition"""
        definitions = [self._parse_slot(s) for s in slots] if slots is not None else None

        with self.database.session() as db:
            template = self._get(db, template_id)
            if name is not None:
                if not name:
                    raise ValidationError('Template name is required')
                template.name = name
            if is_active is not None:
                template.is_active = bool(is_active)
            if definitions is not None:
                template.slots = [TemplateSlot(**d) for d in definitions]
            db.flush()
            logger.info(f"Template {template.id} updated")
            return template.to_dict()

    def delete_template(self, template_id: int) -> bool:
        with self.database.session() as db:
            db.delete(self._get(db, template_id))
        logger.info(f"Template {template_id} deleted")
        return True

    def _get(self, db, template_id: int) -> SlotTemplate:
        template = db.query(SlotTemplate).filter_by(id=template_id).first()
        if not template:
            raise NotFoundError('Template not found')
        return template

    @staticmethod
    def _parse_slot(data: Dict) -> Dict:
        day = data.get('day_of_week')
        if not isinstance(day, int) or isinstance(day, bool) or not 1 <= day <= 7:
            raise ValidationError(f'Invalid day of week: {day!r}')

        try:
            start, end = parse_time(data.get('start_time')), parse_time(data.get('end_time'))
        except ValueError as e:
            raise ValidationError(str(e))
        valid, error = validate_time_range(start, end)
        if not valid:
            raise ValidationError(error)

        duration = minutes_between(start, end)
        given = data.get('duration_minutes')
        if given is not None and given != duration:
            raise ValidationError(
                f'Duration of {given!r} minutes does not match {start.strftime("%H:%M")}-{end.strftime("%H:%M")}'
            )
        valid, error = validate_slot_duration(duration)
        if not valid:
            raise ValidationError(error)

        return {
            'day_of_week': day,
            'start_time': start,
            'end_time': end,
            'duration_minutes': duration
        }
