import sys
from PySide6.QtCore import Qt, QTimer
from PySide6.QtGui import QFont
from PySide6.QtWidgets import (
    QApplication,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)
from tt.common.logger import log
from tt.core.errors import AlreadyRunning, TimeTrackerError
from tt.util.misc import format_duration

_DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


# ---------------------------------------------------------------------------
# Main window
# ---------------------------------------------------------------------------

# Window over a SessionController. Everything runs on the Qt thread, one click at a time, and the tick only reads.
class MainWindow(QMainWindow):

    def __init__(self, controller):
        super().__init__()
        self.controller = controller
        self.setWindowTitle("Time Tracker")
        self._closing = False

        # -- Build UI skeleton --
        central = QWidget()
        self.setCentralWidget(central)
        lay = QVBoxLayout(central)

        # Task row: name, project picker, start/stop
        task_row = QHBoxLayout()
        self._name_input = QLineEdit()
        self._name_input.setPlaceholderText("What are you working on?")
        self._name_input.returnPressed.connect(lambda: self._on_toggle())
        task_row.addWidget(self._name_input, 1)

        self._project_box = QComboBox()
        task_row.addWidget(self._project_box)

        self._toggle_btn = QPushButton("Start")
        self._toggle_btn.clicked.connect(lambda: self._on_toggle())
        task_row.addWidget(self._toggle_btn)
        lay.addLayout(task_row)

        # Live elapsed display
        self._elapsed_lbl = QLabel(format_duration(0))
        f = QFont()
        f.setPointSize(28)
        self._elapsed_lbl.setFont(f)
        self._elapsed_lbl.setAlignment(Qt.AlignCenter)
        lay.addWidget(self._elapsed_lbl)

        # Week row, one label per day
        week_row = QHBoxLayout()
        self._day_labels = []
        for _ in range(7):
            lbl = QLabel()
            lbl.setAlignment(Qt.AlignCenter)
            week_row.addWidget(lbl)
            self._day_labels.append(lbl)
        lay.addLayout(week_row)

        # Today's entries
        self._entries_list = QListWidget()
        lay.addWidget(self._entries_list, 1)

        bottom = QHBoxLayout()
        self._today_lbl = QLabel()
        bottom.addWidget(self._today_lbl, 1)
        self._delete_btn = QPushButton("Delete entry")
        self._delete_btn.clicked.connect(lambda: self._on_delete())
        bottom.addWidget(self._delete_btn)
        lay.addLayout(bottom)

        self._reload_projects()
        self._refresh_all()
        if controller.load_warning:
            QTimer.singleShot(0, lambda: QMessageBox.warning(
                self, "Load Error", f"Saved data could not be loaded, starting empty:\n{controller.load_warning}"))

        # -- Tick timer (1 s) --
        self._tick_n = 0
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._tick)
        self._timer.start(1000)

    # ------------------------------------------------------------------ #
    #  Button handlers                                                     #
    # ------------------------------------------------------------------ #

    def _on_toggle(self):
        try:
            if self.controller.is_running():
                entry = self.controller.stop()
                log.debug(f"Window stopped entry {entry.id}")
            else:
                name = self._name_input.text().strip()
                if not name:
                    return
                self.controller.start(name, project_id=self._project_box.currentData())
        except TimeTrackerError as e:
            QMessageBox.warning(self, "Time Tracker", str(e))
        self._refresh_all()
        self._warn_if_unsaved()

    def _on_delete(self):
        item = self._entries_list.currentItem()
        if item is None:
            return
        entry_id = item.data(Qt.UserRole)
        if QMessageBox.question(self, "Confirm Delete", f"Delete entry {entry_id}?") != QMessageBox.Yes:
            return
        try:
            self.controller.delete_entry(entry_id)
        except TimeTrackerError as e:
            QMessageBox.warning(self, "Time Tracker", str(e))
        self._refresh_all()
        self._warn_if_unsaved()

    # ------------------------------------------------------------------ #
    #  Display helpers                                                     #
    # ------------------------------------------------------------------ #

    def _reload_projects(self):
        self._project_box.clear()
        self._project_box.addItem("(no project)", None)
        for project in self.controller.projects():
            self._project_box.addItem(project.name, project.id)

    def _refresh_all(self):
        running = self.controller.is_running()
        self._toggle_btn.setText("Stop" if running else "Start")
        self._name_input.setEnabled(not running)
        self._project_box.setEnabled(not running)
        active = self.controller.active_entry()
        if active is not None:
            self._name_input.setText(active.description)
        self._update_elapsed()
        self._update_entries()
        self._update_week()

    def _update_elapsed(self):
        if self.controller.is_running():
            self._elapsed_lbl.setText(format_duration(self.controller.elapsed()))
        else:
            self._elapsed_lbl.setText(format_duration(0))

    def _update_entries(self):
        view = self.controller.show_day()
        now = self.controller.clock.now()
        aggregator = self.controller.aggregator
        self._entries_list.clear()
        for entry in view.entries:
            end = entry.end.strftime("%H:%M") if entry.end else "..."
            label = aggregator.label_for(aggregator.key_for(entry))
            self._entries_list.addItem(
                f"{entry.start:%H:%M} - {end}   {format_duration(entry.duration(now))}   {entry.description}   [{label}]")
            self._entries_list.item(self._entries_list.count() - 1).setData(Qt.UserRole, entry.id)
        self._today_lbl.setText(f"Today: {format_duration(view.total)}")

    def _update_week(self):
        today = self.controller.aggregator.today()
        totals = self.controller.show_week()
        for lbl, (day, total) in zip(self._day_labels, totals.items()):
            lbl.setText(f"{_DAY_NAMES[day.weekday()]} {day.day}\n{format_duration(total)}")
            font = lbl.font()
            font.setBold(day == today)
            lbl.setFont(font)

    def _warn_if_unsaved(self):
        if self.controller.unsaved:
            self.statusBar().showMessage("Saving failed, changes are only kept in memory")
        else:
            self.statusBar().clearMessage()

    # ------------------------------------------------------------------ #
    #  Tick                                                                #
    # ------------------------------------------------------------------ #

    def _tick(self):
        if not self.controller.is_running():
            return
        self._update_elapsed()
        self._tick_n += 1
        # Running totals only need refreshing every so often
        if self._tick_n % 15 == 0:
            self._update_entries()
            self._update_week()

    # ------------------------------------------------------------------ #
    #  Window close                                                        #
    # ------------------------------------------------------------------ #

    def closeEvent(self, event):
        if self._closing:
            event.accept()
            return
        try:
            summary = self.controller.exit()
        except AlreadyRunning as e:
            QMessageBox.information(self, "Time Tracker", str(e))
            event.ignore()
            return
        self._closing = True
        self.exit_code = 0 if summary.saved else 1
        if not summary.saved:
            QMessageBox.warning(self, "Save Error", "Failed to save the session, see the log for details.")
        lines = [f"{name}: {format_duration(total)}" for name, total in summary.by_description.items()]
        lines.append(f"\nToday: {format_duration(summary.today_total)}")
        QMessageBox.information(self, "Session summary", "\n".join(lines) if summary.entries else "No entries.")
        event.accept()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def run_window(controller):
    app = QApplication.instance() or QApplication(sys.argv)
    window = MainWindow(controller)
    window.exit_code = 0
    window.show()
    app.exec()
    return window.exit_code
