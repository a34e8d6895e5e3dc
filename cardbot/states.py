from aiogram.fsm.state import State, StatesGroup


class IssueStates(StatesGroup):
    waiting_for_first_name = State()
    waiting_for_last_name = State()
    waiting_for_number = State()
    waiting_for_photo = State()
    overwrite_confirmation = State()


class EditStates(StatesGroup):
    waiting_for_number = State()
    waiting_for_changes = State()
