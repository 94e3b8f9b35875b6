# Generated manually

import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


STATUS_CHOICES = [('active', 'Active'), ('inactive', 'Inactive'), ('draft', 'Draft')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PriceList',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='External price list identifier', max_length=100, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('country', models.CharField(blank=True, max_length=100)),
                ('region', models.CharField(blank=True, max_length=100)),
                ('customer_type', models.CharField(blank=True, default='all', max_length=50)),
                ('channel', models.CharField(blank=True, default='all', max_length=50)),
                ('applies_to', models.CharField(default='all', max_length=50)),
                ('status', models.CharField(choices=STATUS_CHOICES, db_index=True, default='active', max_length=20)),
                ('is_default', models.BooleanField(default=False)),
                ('priority', models.IntegerField(default=0)),
                ('discount_type', models.CharField(blank=True, max_length=50)),
                ('start_date', models.DateField(blank=True, null=True)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('minimum_quantity', models.PositiveIntegerField(blank=True, null=True)),
                ('maximum_quantity', models.PositiveIntegerField(blank=True, null=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('notes', models.TextField(blank=True)),
                ('distributor_code', models.CharField(blank=True, db_index=True, default='', max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'price_lists',
                'ordering': ['-priority', 'name'],
            },
        ),
        migrations.CreateModel(
            name='Price',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='External price identifier', max_length=100, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('product_sku', models.CharField(db_index=True, max_length=100)),
                ('product_name', models.CharField(blank=True, max_length=255)),
                ('base_price', models.DecimalField(decimal_places=2, max_digits=14)),
                ('sale_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('discount_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('wholesale_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('retail_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('loyalty_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('corporate_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('cost_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('competitor_price', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('valid_from', models.DateField(blank=True, null=True)),
                ('valid_until', models.DateField(blank=True, null=True)),
                ('min_quantity', models.PositiveIntegerField(default=1)),
                ('max_quantity', models.PositiveIntegerField(default=1000)),
                ('price_type', models.CharField(choices=[('regular', 'Regular'), ('promotional', 'Promotional'), ('seasonal', 'Seasonal')], default='regular', max_length=20)),
                ('customer_type', models.CharField(default='all', max_length=50)),
                ('channel', models.CharField(default='omnichannel', max_length=50)),
                ('region', models.CharField(blank=True, max_length=100)),
                ('city', models.CharField(blank=True, max_length=100)),
                ('zone', models.CharField(blank=True, max_length=100)),
                ('status', models.CharField(choices=STATUS_CHOICES, db_index=True, default='active', max_length=20)),
                ('priority', models.IntegerField(default=1)),
                ('tax_included', models.BooleanField(default=True)),
                ('tax_rate', models.DecimalField(decimal_places=2, default=Decimal('19.00'), max_digits=5)),
                ('margin', models.DecimalField(blank=True, decimal_places=2, max_digits=7, null=True)),
                ('market_position', models.CharField(blank=True, choices=[('above_market', 'Above Market'), ('competitive', 'Competitive'), ('below_market', 'Below Market')], max_length=20)),
                ('custom_fields', models.JSONField(blank=True, default=dict)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('notes', models.TextField(blank=True)),
                ('distributor_code', models.CharField(blank=True, db_index=True, default='', max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('price_list', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='prices', to='pricing.pricelist')),
                ('product', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='prices', to='catalog.product')),
            ],
            options={
                'db_table': 'prices',
                'ordering': ['priority', 'id'],
                'indexes': [models.Index(fields=['price_list', 'product'], name='idx_price_list_product')],
            },
        ),
        migrations.CreateModel(
            name='Discount',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='External discount identifier', max_length=100, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('discount_type', models.CharField(choices=[('percentage', 'Percentage'), ('fixed_amount', 'Fixed Amount'), ('tiered_percentage', 'Tiered Percentage'), ('progressive_percentage', 'Progressive Percentage'), ('bogo', 'Buy One Get One')], default='percentage', max_length=30)),
                ('template', models.CharField(blank=True, choices=[('buy_x_get_y', 'Buy X Get Y'), ('tiered_volume', 'Tiered Volume'), ('bundle', 'Bundle'), ('bogo', 'Buy One Get One'), ('spend_threshold', 'Spend Threshold'), ('mix_and_match', 'Mix and Match'), ('flash_sale', 'Flash Sale'), ('loyalty_vip', 'Loyalty VIP'), ('welcome', 'Welcome'), ('seasonal', 'Seasonal'), ('free_shipping', 'Free Shipping'), ('clearance', 'Clearance')], db_index=True, max_length=30)),
                ('discount_value', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('valid_from', models.DateTimeField(blank=True, null=True)),
                ('valid_to', models.DateTimeField(blank=True, null=True)),
                ('status', models.CharField(choices=STATUS_CHOICES, db_index=True, default='active', max_length=20)),
                ('priority', models.IntegerField(default=0)),
                ('is_cumulative', models.BooleanField(default=False)),
                ('max_discount_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('min_purchase_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('usage_limit', models.PositiveIntegerField(blank=True, null=True)),
                ('usage_limit_per_customer', models.PositiveIntegerField(blank=True, null=True)),
                ('times_used', models.PositiveIntegerField(default=0)),
                ('customer_type', models.CharField(default='all', max_length=50)),
                ('channel', models.CharField(default='all', max_length=50)),
                ('region', models.CharField(blank=True, max_length=100)),
                ('conditions', models.JSONField(blank=True, default=dict)),
                ('applicable_to', models.JSONField(blank=True, default=list, help_text='[{"type": "category|product|brand|tag|all_products", "value": ...}]')),
                ('template_config', models.JSONField(blank=True, default=dict)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('notes', models.TextField(blank=True)),
                ('distributor_code', models.CharField(blank=True, db_index=True, default='', max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'discounts',
                'ordering': ['-priority', 'name'],
            },
        ),
        migrations.CreateModel(
            name='Coupon',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=50, unique=True)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('discount_type', models.CharField(choices=[('percentage', 'Percentage'), ('fixed_amount', 'Fixed Amount')], default='percentage', max_length=20)),
                ('value', models.DecimalField(decimal_places=2, max_digits=12)),
                ('min_purchase_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('usage_limit', models.PositiveIntegerField(blank=True, null=True)),
                ('times_used', models.PositiveIntegerField(default=0)),
                ('valid_from', models.DateTimeField(blank=True, null=True)),
                ('valid_to', models.DateTimeField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('distributor_code', models.CharField(blank=True, db_index=True, default='', max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('discount', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='coupons', to='pricing.discount')),
            ],
            options={
                'db_table': 'coupons',
            },
        ),
    ]
