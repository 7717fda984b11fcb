import json
import os
from datetime import date
from pathlib import Path

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from clinic.models import Appointment, Doctor, Patient
from clinic.services.data_transfer import (
    SchemaError,
    SchemaRegistry,
    create_backup,
    export_tables,
    import_file,
    import_rows,
    load_csv,
    prune_backups,
    restore_backup,
    sql_literal,
    verify_backup,
    write_csv,
)
from clinic.tests.helpers import PASSWORD, logged_in_client

pytestmark = pytest.mark.django_db


@pytest.fixture
def registry():
    return SchemaRegistry()


def test_registry_only_knows_clinic_tables(registry):
    tables = registry.tables()
    assert 'patients' in tables and 'doctors' in tables
    assert 'django_session' not in tables
    with pytest.raises(SchemaError):
        registry.resolve('django_session')
    with pytest.raises(SchemaError):
        registry.resolve('patients; DROP TABLE doctors')


def test_registry_reads_catalog(registry):
    assert registry.primary_key('patients') == 'id'
    assert {'id', 'doctor_id', 'nombre', 'email', 'telefono', 'created_at'} <= set(registry.columns('patients'))


def test_json_export_then_import_upserts(tmp_path, doctor, patient):
    gone = Patient.objects.create(doctor=doctor, nombre='Temporal', email='t@example.com')
    result = export_tables(['patients'], 'json', directory=tmp_path)
    assert result['total_rows'] == 2

    payload = json.loads(open(result['files'][0], encoding='utf-8').read())
    assert payload['export_info']['tables'] == ['patients']
    assert payload['data']['patients']['count'] == 2

    Patient.objects.filter(id=patient.id).update(nombre='Cambiado')
    gone_id = gone.id
    gone.delete()

    report = import_file(result['files'][0], 'json')
    assert report['success'] is True
    assert (report['imported'], report['updated'], report['skipped']) == (1, 1, 0)
    assert Patient.objects.get(id=patient.id).nombre == 'María López'
    assert Patient.objects.get(id=gone_id).nombre == 'Temporal'


def test_xml_round_trip(tmp_path, doctor, patient):
    Appointment.objects.create(patient=patient, doctor=doctor, fecha=date(2025, 6, 1), hora='10:00', motivo='A & B')
    result = export_tables(['appointments'], 'xml', directory=tmp_path)
    Appointment.objects.update(motivo='changed')

    report = import_file(result['files'][0], 'xml')
    assert report['updated'] == 1
    assert Appointment.objects.get().motivo == 'A & B'


def test_csv_export_writes_one_file_per_table(tmp_path, doctor, patient):
    result = export_tables(['doctors', 'patients'], 'csv', directory=tmp_path, filename='dump.csv')
    names = sorted(os.path.basename(f) for f in result['files'])
    assert names == ['dump.doctors.csv', 'dump.patients.csv']

    Patient.objects.update(telefono='000')
    report = import_file(tmp_path / 'dump.patients.csv', 'csv')
    assert report['updated'] == 1
    assert Patient.objects.get().telefono == '555-0101'


def test_csv_keeps_nulls_apart_from_empty_strings(tmp_path):
    data = {'t': {'columns': ['a', 'b'], 'rows': [{'a': None, 'b': ''}], 'count': 1}}
    (target,) = write_csv(data, tmp_path / 'x.csv')
    assert load_csv(target) == {'t': [{'a': None, 'b': ''}]}


def test_sql_export_quotes_identifiers_and_literals(tmp_path, doctor):
    Patient.objects.create(doctor=doctor, nombre="O'Brien", email='ob@example.com')
    result = export_tables(['patients'], 'sql', directory=tmp_path)
    text = open(result['files'][0], encoding='utf-8').read()
    assert 'INSERT INTO "patients"' in text
    assert "'O''Brien'" in text
    assert sql_literal(None) == 'NULL'
    assert sql_literal(True) == "'1'"


def test_rows_without_known_columns_are_skipped(patient):
    report = import_rows({'patients': [{'unknown': 1}, {}]})
    assert report['skipped'] == 2
    assert report['success'] is True


def test_failed_row_rolls_back_whole_import(patient):
    report = import_rows({'patients': [
        {'id': patient.id, 'nombre': 'Primero'},
        {'id': 424242, 'nombre': 'Sin doctor'},
    ]})
    assert report['success'] is False
    assert report['rolled_back'] is True
    assert report['errors']
    assert (report['imported'], report['updated'], report['skipped']) == (0, 0, 0)
    assert Patient.objects.get(id=patient.id).nombre == 'María López'
    assert not Patient.objects.filter(id=424242).exists()


def test_unknown_table_aborts_import(patient):
    report = import_rows({'patients': [{'id': patient.id, 'nombre': 'X'}], 'auth_user': [{'id': 1}]})
    assert report['rolled_back'] is True
    assert 'auth_user' in report['errors'][0]
    assert Patient.objects.get(id=patient.id).nombre == 'María López'


def test_export_rejects_unknown_format(tmp_path):
    with pytest.raises(SchemaError):
        export_tables(None, 'pdf', directory=tmp_path)


def test_prune_keeps_newest_backups(tmp_path):
    for i in range(4):
        p = tmp_path / f'backup_full_{i}.sql'
        p.write_text('--')
        os.utime(p, (1_000_000 + i, 1_000_000 + i))
    removed = prune_backups(tmp_path, keep=2)
    assert sorted(p.name for p in removed) == ['backup_full_0.sql', 'backup_full_1.sql']
    assert sorted(p.name for p in tmp_path.iterdir()) == ['backup_full_2.sql', 'backup_full_3.sql']


def test_create_backup(tmp_path, patient):
    result = create_backup(directory=tmp_path, keep=5)
    assert os.path.basename(result['files'][0]).startswith('backup_full_')
    assert 'patients' in result['tables']

    partial = create_backup(['patients'], 'json', directory=tmp_path, keep=5)
    assert os.path.basename(partial['files'][0]).startswith('backup_partial_')


def test_backup_then_restore_round_trip(tmp_path, doctor, patient):
    motivo = "Dolor; 'agudo', (leve)\nsegunda línea"
    Appointment.objects.create(patient=patient, doctor=doctor, fecha=date(2025, 6, 1), hora='10:00', motivo=motivo)
    path = create_backup(directory=tmp_path, keep=5)['files'][0]
    assert verify_backup(path)['integrity'] == 'good'

    Patient.objects.filter(id=patient.id).update(nombre='Cambiado')
    Patient.objects.create(doctor=doctor, nombre='Nuevo', email='n@example.com')
    Appointment.objects.all().delete()

    result = restore_backup(path)
    assert result['success'] is True
    assert list(Patient.objects.values_list('nombre', flat=True)) == ['María López']
    appointment = Appointment.objects.get()
    assert (appointment.motivo, appointment.fecha) == (motivo, date(2025, 6, 1))
    assert Doctor.objects.get(id=doctor.id).check_password(PASSWORD)


def test_restore_json_backup(tmp_path, patient):
    path = create_backup(['patients'], 'json', directory=tmp_path, keep=5)['files'][0]
    Patient.objects.update(email='otro@example.com')
    assert restore_backup(path)['restored_rows'] == 1
    assert Patient.objects.get().email == 'maria@example.com'


def test_restore_rejects_statements_it_did_not_write(tmp_path, patient):
    path = Path(create_backup(directory=tmp_path, keep=5)['files'][0])
    path.write_text(path.read_text(encoding='utf-8') + 'DROP TABLE doctors;\n', encoding='utf-8')
    with pytest.raises(SchemaError):
        restore_backup(path)
    assert Patient.objects.filter(id=patient.id).exists()


def test_restore_detects_missing_rows(tmp_path, registry, patient):
    path = Path(create_backup(directory=tmp_path, keep=5)['files'][0])
    prefix = f'INSERT INTO {registry.quote("patients")} '
    lines = [line for line in path.read_text(encoding='utf-8').splitlines() if not line.startswith(prefix)]
    path.write_text('\n'.join(lines), encoding='utf-8')
    with pytest.raises(SchemaError, match='patients'):
        verify_backup(path)


def test_restore_rejects_unregistered_table(tmp_path, registry):
    path = tmp_path / 'backup_full_x.sql'
    path.write_text('-- consultorio dump\nDELETE FROM "django_session";\n', encoding='utf-8')
    with pytest.raises(SchemaError):
        restore_backup(path)


# ---------------------------------------------------------------------
# Management commands
# ---------------------------------------------------------------------

def test_ensure_test_doctor_allows_known_login(db):
    call_command('ensure_test_doctor')
    call_command('ensure_test_doctor')
    doctor = Doctor.objects.get(username='testdoctor')
    assert Doctor.objects.filter(username='testdoctor').count() == 1
    client = logged_in_client(doctor, 'TestPass123!')
    assert client.session['user_id'] == doctor.id


def test_export_and_import_commands(tmp_path, patient):
    call_command('export_data', 'patients', '--format', 'json', '--dir', str(tmp_path), '--filename', 'p.json')
    Patient.objects.update(nombre='Otro')
    call_command('import_data', str(tmp_path / 'p.json'))
    assert Patient.objects.get().nombre == 'María López'


def test_commands_reject_unknown_tables(tmp_path):
    with pytest.raises(CommandError):
        call_command('export_data', 'django_session', '--dir', str(tmp_path))
    with pytest.raises(CommandError):
        call_command('import_data', str(tmp_path / 'missing.json'))


def test_backup_command(tmp_path, patient):
    call_command('backup_db', '--dir', str(tmp_path), '--keep', '3')
    assert len(list(tmp_path.glob('backup_full_*.sql'))) == 1


def test_restore_command(tmp_path, patient):
    call_command('backup_db', '--dir', str(tmp_path), '--keep', '3')
    (path,) = tmp_path.glob('backup_full_*.sql')
    Patient.objects.update(nombre='Otro')

    call_command('restore_db', str(path), '--verify-only')
    assert Patient.objects.get().nombre == 'Otro'

    call_command('restore_db', str(path))
    assert Patient.objects.get().nombre == 'María López'


def test_restore_command_rejects_bad_file(tmp_path):
    bad = tmp_path / 'backup_full_bad.sql'
    bad.write_text('DELETE FROM doctors;', encoding='utf-8')
    with pytest.raises(CommandError):
        call_command('restore_db', str(bad))
    with pytest.raises(CommandError):
        call_command('restore_db', str(tmp_path / 'missing.sql'))
