from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Input, Label, Rule

from api.errors import ApiRequestError, ValidationError
from services.session import display_phone, profile_changes
from views.base_screen import BaseScreen

PROFILE_FIELDS = {
    "name": "input-profile-name",
    "phone": "input-profile-phone",
    "street": "input-profile-street",
}


class ProfileScreen(BaseScreen):
    """
    Name, phone and default street for the signed-in customer, plus a
    password change form.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-profile"):
            yield Label("", id="label-profile-email")
            yield Label("Name *")
            yield Input(id="input-profile-name")
            yield Label("Phone (+91)")
            yield Input(placeholder="9876543210", id="input-profile-phone")
            yield Label("Street address")
            yield Input(placeholder="12 MG Road, Flat 4B", id="input-profile-street")
            with Horizontal(classes="div-profile-btns"):
                yield Button("Save Profile", id="btn-profile-save", variant="primary")
            yield Rule()
            yield Label("Current password")
            yield Input(password=True, id="input-profile-current-pwd")
            yield Label("New password")
            yield Input(placeholder="at least 6 characters", password=True, id="input-profile-new-pwd")
            with Horizontal(classes="div-profile-btns"):
                yield Button("Change Password", id="btn-profile-pwd")

    def on_mount(self) -> None:
        self.show_user()
        self.load_profile()

    def show_user(self) -> None:
        user = self.app.state.session.user
        if user is None:
            return
        self.query_one("#label-profile-email", Label).update(f"Signed in as {user.email}")
        self.query_one("#input-profile-name", Input).value = user.name
        self.query_one("#input-profile-phone", Input).value = display_phone(user.phone)

    @work(exclusive=True, group="profile")
    async def load_profile(self) -> None:
        if await self.app.state.session.refresh_profile() is not None:
            self.show_user()

    def _mark_invalid(self, field) -> None:
        for input_id in PROFILE_FIELDS.values():
            self.query_one(f"#{input_id}", Input).remove_class("-invalid")
        input_id = PROFILE_FIELDS.get(field or "")
        if input_id:
            target = self.query_one(f"#{input_id}", Input)
            target.add_class("-invalid")
            target.focus()

    @on(Button.Pressed, "#btn-profile-save")
    @work(exclusive=True, group="profile")
    async def handle_save(self) -> None:
        try:
            changes = profile_changes(
                *(self.query_one(f"#{input_id}", Input).value for input_id in PROFILE_FIELDS.values())
            )
            await self.app.state.session.update_profile(**changes)
        except ValidationError as e:
            self._mark_invalid(e.field)
            self.notify(e.message, severity="error")
            return
        except ApiRequestError as e:
            self.notify(e.message or "Could not update your profile.", severity="error")
            return
        self._mark_invalid(None)
        self.show_user()
        self.notify("Profile updated.")

    @on(Button.Pressed, "#btn-profile-pwd")
    @work(exclusive=True, group="password")
    async def handle_change_password(self) -> None:
        current = self.query_one("#input-profile-current-pwd", Input)
        new = self.query_one("#input-profile-new-pwd", Input)
        try:
            message = await self.app.state.session.change_password(current.value, new.value)
        except (ValidationError, ApiRequestError) as e:
            self.notify(e.message, severity="error")
            return
        current.value = ""
        new.value = ""
        self.notify(message)
