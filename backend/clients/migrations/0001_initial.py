# Generated manually

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('pricing', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Client',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('client_code', models.CharField(blank=True, max_length=50, unique=True)),
                ('email', models.EmailField(max_length=254)),
                ('first_name', models.CharField(max_length=150)),
                ('last_name', models.CharField(max_length=150)),
                ('phone', models.CharField(max_length=30)),
                ('phone_optional', models.CharField(blank=True, max_length=30)),
                ('gender', models.CharField(blank=True, choices=[('M', 'Male'), ('F', 'Female')], max_length=1)),
                ('document_type', models.CharField(blank=True, max_length=20)),
                ('document', models.CharField(blank=True, db_index=True, max_length=50)),
                ('customer_class', models.CharField(blank=True, max_length=50)),
                ('customer_class_two', models.CharField(blank=True, max_length=50)),
                ('customer_class_three', models.CharField(blank=True, max_length=50)),
                ('customer_class_dist', models.CharField(blank=True, max_length=50)),
                ('customer_class_dist_two', models.CharField(blank=True, max_length=50)),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('status', models.CharField(choices=[('A', 'Active'), ('N', 'New'), ('I', 'Inactive')], db_index=True, default='A', max_length=1)),
                ('distributor_codes', models.JSONField(blank=True, default=list)),
                ('information', models.JSONField(blank=True, default=dict, help_text='Route, seller, payment and price list details from the distributor ERP')),
                ('is_verified', models.BooleanField(default=False)),
                ('distributor_code', models.CharField(blank=True, db_index=True, default='', max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('price_list', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='clients', to='pricing.pricelist')),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='client', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'clients',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['email'], name='idx_client_email'), models.Index(fields=['customer_class'], name='idx_client_class')],
                'constraints': [models.UniqueConstraint(fields=('distributor_code', 'email'), name='unique_client_email_per_distributor')],
            },
        ),
    ]
