"""面向用户的文案

所有发给用户的文字都集中在这里，按 locale 分组；引擎只通过 Messages 取文案，
不在业务代码里拼接自然语言。原版机器人使用印尼语，因此保留 "id" 文案。
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict

from remindbot.utils import utc_to_user_local

__all__ = ["SUPPORTED_LOCALES", "Messages", "get_messages"]

_EN: Dict[str, str] = {
    "create_missing_fields": "Hmm, the task or the time isn't clear. Try again, e.g. 'Remind me about the team meeting tomorrow at 10'.",
    "create_bad_time": "I couldn't understand the time \"{time}\". Try something like 'tomorrow at 10am' or 'in 3 hours'.",
    "create_ok": "Got it, I'll remind you about \"{task}\" on {when}.",
    "create_save_failed": "I couldn't save the reminder, the database seems unreachable. Please try again in a moment.",
    "list_header": "Your pending reminders:",
    "list_item": "{index}. {task} ({when})",
    "list_empty": "You have no pending reminders right now.",
    "list_failed": "I couldn't load your reminders, the database seems unreachable. Please try again later.",
    "delete_target_missing": "Which reminder should I delete? Give me a keyword, e.g. 'delete the meeting reminder'.",
    "edit_target_missing": "Which reminder should I change? Give me a keyword.",
    "edit_updates_missing": "What should I change it to? e.g. 'change it to important meeting' or 'move it to tomorrow at 2pm'.",
    "delete_not_found": "I couldn't find a pending reminder matching \"{target}\". Want to check your list first?",
    "edit_not_found": "I couldn't find a pending reminder matching \"{target}\" to change. Want to check your list first?",
    "lookup_failed": "I couldn't search your reminders right now, the database seems unreachable. Please try again later.",
    "ambiguous_header": "More than one reminder matches \"{target}\":",
    "delete_ambiguous_footer": "Please give a more specific description of the one to delete.",
    "edit_ambiguous_footer": "Please give a more specific description of the one to change.",
    "edit_bad_time": "The new time \"{time}\" doesn't make sense to me, so the change was cancelled. Try another format.",
    "edit_ok": "Done, the reminder \"{task}\" is now set for {when}.",
    "edit_failed": "I couldn't update the reminder, the database seems unreachable. Please try again later.",
    "delete_ok": "OK, the reminder \"{task}\" has been deleted.",
    "delete_failed": "I couldn't delete the reminder, the database seems unreachable. Please try again later.",
    "no_description": "(no description)",
    "unknown_help": (
        "Sorry, I didn't get that. Try:\n"
        "- 'Remind me to [task] [time]'\n"
        "- 'Show my reminders'\n"
        "- 'Delete reminder [keyword]'\n"
        "- 'Change reminder [keyword] to [change]'"
    ),
    "unknown_error": "Something went wrong while reading your message (error: {error}). Please try again.",
    "unexpected_error": "Oops, something unexpected went wrong on my side. I've logged it, please try again later.",
    "notification": "🔔 Reminder: {task}",
    "welcome": "Reminder bot online. Tell me what to remind you about and when.",
    "not_allowed": "You are not allowed to use this bot.",
}

_ID: Dict[str, str] = {
    "create_missing_fields": "Hmm, kayaknya deskripsi tugas atau waktunya kurang jelas deh. Coba lagi ya. Contoh: 'Ingatkan aku meeting penting besok jam 10'.",
    "create_bad_time": "Waduh, format waktunya \"{time}\" agak aneh nih. Coba format lain, misal 'besok jam 10 pagi' atau '3 jam lagi'.",
    "create_ok": "Oke, pengingat untuk \"{task}\" sudah diatur pada {when}.",
    "create_save_failed": "Gagal nyimpen pengingat di database nih. Mungkin koneksi lagi gangguan. Coba beberapa saat lagi ya.",
    "list_header": "Pengingatmu yang belum selesai:",
    "list_item": "{index}. {task} ({when})",
    "list_empty": "Kamu tidak punya pengingat yang belum selesai saat ini.",
    "list_failed": "Gagal ngambil daftar pengingat dari database. Mungkin koneksi lagi gangguan.",
    "delete_target_missing": "Mau hapus pengingat yang mana nih? Kasih tau kata kuncinya ya (contoh: 'hapus pengingat meeting').",
    "edit_target_missing": "Mau ubah pengingat yang mana nih? Kasih tau kata kuncinya ya.",
    "edit_updates_missing": "Mau diubah jadi apa nih? Kasih tau detailnya ya (contoh: 'ubah jadi meeting penting' atau 'ubah waktunya jadi besok jam 2 siang').",
    "delete_not_found": "Nggak nemu pengingat aktif yang cocok sama \"{target}\". Coba cek daftar pengingatmu dulu?",
    "edit_not_found": "Nggak nemu pengingat aktif yang cocok sama \"{target}\" buat diubah. Coba cek daftar pengingatmu dulu?",
    "lookup_failed": "Gagal saat nyari pengingat di database, mungkin ada gangguan koneksi.",
    "ambiguous_header": "Ditemukan lebih dari satu pengingat yang cocok dengan \"{target}\":",
    "delete_ambiguous_footer": "Mohon berikan deskripsi yang lebih spesifik untuk dihapus.",
    "edit_ambiguous_footer": "Mohon berikan deskripsi yang lebih spesifik untuk diubah.",
    "edit_bad_time": "Waduh, format waktu barunya (\"{time}\") agak aneh nih. Perubahan dibatalkan. Coba pakai format lain ya.",
    "edit_ok": "Oke, pengingat untuk \"{task}\" sekarang diatur pada {when}.",
    "edit_failed": "Gagal ngubah pengingat di database. Mungkin koneksi lagi gangguan.",
    "delete_ok": "Oke, pengingat untuk \"{task}\" telah dihapus.",
    "delete_failed": "Gagal ngehapus pengingat dari database. Mungkin koneksi lagi gangguan.",
    "no_description": "(tanpa deskripsi)",
    "unknown_help": (
        "Maaf, aku belum ngerti maksudnya. Coba bilang:\n"
        "- 'Ingatkan aku [tugas] [waktu]'\n"
        "- 'Lihat pengingatku'\n"
        "- 'Hapus pengingat [kata kunci]'\n"
        "- 'Ubah pengingat [kata kunci] jadi [perubahan]'"
    ),
    "unknown_error": "Hmm, ada masalah pas coba ngertiin pesanmu (Error: {error}). Coba lagi ya.",
    "unexpected_error": "Waduh, ada error tak terduga nih di sistem internal. Aku udah catet masalahnya, coba lagi nanti ya.",
    "notification": "🔔 Pengingat: {task}",
    "welcome": "Bot pengingat sudah online. Bilang saja mau diingatkan apa dan kapan.",
    "not_allowed": "Kamu tidak punya akses ke bot ini.",
}

_MONTHS = {
    "en": ["January", "February", "March", "April", "May", "June", "July",
           "August", "September", "October", "November", "December"],
    "id": ["Januari", "Februari", "Maret", "April", "Mei", "Juni", "Juli",
           "Agustus", "September", "Oktober", "November", "Desember"],
}

_LONG_FORMAT = {
    "en": "{day} {month} {year} at {hour:02d}:{minute:02d}",
    "id": "{day} {month} {year} jam {hour:02d}:{minute:02d}",
}

_CATALOGS = {"en": _EN, "id": _ID}

SUPPORTED_LOCALES = tuple(_CATALOGS)


class Messages:
    def __init__(self, locale: str = "en") -> None:
        self.locale = locale if locale in _CATALOGS else "en"
        self._catalog = _CATALOGS[self.locale]

    def text(self, key: str, **kwargs: object) -> str:
        template = self._catalog.get(key) or _EN[key]
        return template.format(**kwargs) if kwargs else template

    def format_short(self, utc_dt: datetime, tz: str) -> str:
        """列表用短格式，例如 "3 Mar 14:05" """
        local = utc_to_user_local(utc_dt, tz)
        month = _MONTHS[self.locale][local.month - 1][:3]
        return f"{local.day} {month} {local.hour:02d}:{local.minute:02d}"

    def format_long(self, utc_dt: datetime, tz: str) -> str:
        """确认消息用长格式，例如 "3 March 2030 at 14:05" """
        local = utc_to_user_local(utc_dt, tz)
        return _LONG_FORMAT[self.locale].format(
            day=local.day,
            month=_MONTHS[self.locale][local.month - 1],
            year=local.year,
            hour=local.hour,
            minute=local.minute,
        )


def get_messages(locale: str) -> Messages:
    """不支持的 locale 回退到 en"""
    return Messages(locale)
