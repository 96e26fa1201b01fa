"""
Default pricing tiers, features, per-tier feature mapping and federal/state
tax tables used to seed a fresh data directory.
"""

STANDARD_TIERS = [
    {
        'tier': 'starter',
        'name': 'Basic Payroll',
        'description': 'Essential payroll processing for small businesses',
        'base_price': '15.00',
        'per_employee_price': '4.00',
        'per_contractor_price': '2.00',
        'free_contractors': 5,
        'min_employees': 1,
        'max_employees': 25,
        'is_active': True,
        'included_features': ['basic_payroll_processing', 'direct_deposit', 'tax_filing'],
    },
    {
        'tier': 'professional',
        'name': 'Professional Payroll',
        'description': 'Comprehensive payroll solution for growing businesses',
        'base_price': '35.00',
        'per_employee_price': '3.50',
        'per_contractor_price': '1.50',
        'free_contractors': 10,
        'global_payroll_per_employee_price': '10.00',
        'min_employees': 10,
        'max_employees': 100,
        'is_active': True,
        'included_features': [
            'basic_payroll_processing', 'direct_deposit', 'tax_filing',
            'time_tracking', 'leave_management', 'employee_portal',
        ],
    },
    {
        'tier': 'enterprise',
        'name': 'Enterprise Payroll',
        'description': 'Complete payroll and HR management for large organizations',
        'base_price': '75.00',
        'per_employee_price': '3.00',
        'per_contractor_price': '1.00',
        'free_contractors': 20,
        'global_payroll_per_employee_price': '8.00',
        'on_demand_pay_fee': '1.00',
        'min_employees': 50,
        'is_active': True,
        'included_features': [
            'basic_payroll_processing', 'direct_deposit', 'tax_filing',
            'time_tracking', 'leave_management', 'employee_portal',
            'global_payroll', 'on_demand_pay', 'hr_management',
            'benefits_administration',
        ],
    },
]

STANDARD_FEATURES = [
    {'name': 'Basic Payroll Processing', 'description': 'Calculate wages, taxes, and deductions',
     'category': 'core', 'is_standard': True},
    {'name': 'Direct Deposit', 'description': 'Automatic payroll deposits to employee bank accounts',
     'category': 'payments', 'is_standard': True},
    {'name': 'Tax Filing', 'description': 'Automatic tax calculations and filing',
     'category': 'compliance', 'is_standard': True},
    {'name': 'Time Tracking', 'description': 'Track employee hours and overtime',
     'category': 'core', 'is_standard': False},
    {'name': 'Leave Management', 'description': 'Track and manage PTO, sick leave, and vacation time',
     'category': 'hr', 'is_standard': False},
    {'name': 'Employee Portal', 'description': 'Self-service portal for employees to view paystubs and tax forms',
     'category': 'hr', 'is_standard': False},
    {'name': 'Global Payroll', 'description': 'Process payroll for international employees',
     'category': 'international', 'is_standard': False},
    {'name': 'On-Demand Pay', 'description': 'Allow employees to access earned wages before payday',
     'category': 'advanced', 'is_standard': False},
    {'name': 'HR Management', 'description': 'Complete HR management tools and reporting',
     'category': 'hr', 'is_standard': False},
    {'name': 'Benefits Administration', 'description': 'Manage and administer employee benefits',
     'category': 'hr', 'is_standard': False},
    {'name': 'Tax Form Generation', 'description': 'Generate W-2s, 1099s, and other tax forms',
     'category': 'compliance', 'is_standard': True},
    {'name': 'Multi-State Tax Filing', 'description': 'Support for multi-state tax compliance',
     'category': 'compliance', 'is_standard': False},
]

# tier -> [(feature name, is_included, additional_cost)]
FEATURE_MAPPING = {
    'starter': [
        ('Basic Payroll Processing', True, None),
        ('Direct Deposit', True, None),
        ('Tax Filing', True, None),
        ('Tax Form Generation', True, None),
        ('Time Tracking', False, '5.00'),
        ('Leave Management', False, '3.00'),
        ('Employee Portal', False, '4.00'),
        ('Global Payroll', False, None),
        ('On-Demand Pay', False, None),
        ('HR Management', False, None),
        ('Benefits Administration', False, None),
        ('Multi-State Tax Filing', False, '10.00'),
    ],
    'professional': [
        ('Basic Payroll Processing', True, None),
        ('Direct Deposit', True, None),
        ('Tax Filing', True, None),
        ('Tax Form Generation', True, None),
        ('Time Tracking', True, None),
        ('Leave Management', True, None),
        ('Employee Portal', True, None),
        ('Global Payroll', False, '10.00'),
        ('On-Demand Pay', False, '2.00'),
        ('HR Management', False, '15.00'),
        ('Benefits Administration', False, '10.00'),
        ('Multi-State Tax Filing', True, None),
    ],
    'enterprise': [
        ('Basic Payroll Processing', True, None),
        ('Direct Deposit', True, None),
        ('Tax Filing', True, None),
        ('Tax Form Generation', True, None),
        ('Time Tracking', True, None),
        ('Leave Management', True, None),
        ('Employee Portal', True, None),
        ('Global Payroll', True, None),
        ('On-Demand Pay', True, None),
        ('HR Management', True, None),
        ('Benefits Administration', True, None),
        ('Multi-State Tax Filing', True, None),
    ],
}

# Seed tax data. Brackets for federal income tax are the 2024 single-filer
# annual brackets divided over 26 biweekly periods.
TAX_JURISDICTIONS = [
    {'id': 1, 'name': 'United States', 'code': 'US', 'type': 'federal',
     'effective_date': '2024-01-01'},
    {'id': 2, 'name': 'Pennsylvania', 'code': 'PA', 'type': 'state',
     'parent_jurisdiction_id': 1, 'effective_date': '2024-01-01'},
    {'id': 3, 'name': 'Philadelphia', 'code': 'PA-PHL', 'type': 'city',
     'parent_jurisdiction_id': 2, 'effective_date': '2024-01-01'},
    {'id': 4, 'name': 'Texas', 'code': 'TX', 'type': 'state',
     'parent_jurisdiction_id': 1, 'effective_date': '2024-01-01'},
]

TAX_TABLES = [
    {'id': 1, 'jurisdiction_id': 1, 'tax_type': 'social_security', 'calculation_method': 'wage_base',
     'tax_rate': '0.062', 'wage_base': '168600.00', 'effective_date': '2024-01-01'},
    {'id': 2, 'jurisdiction_id': 1, 'tax_type': 'medicare', 'calculation_method': 'flat_rate',
     'tax_rate': '0.0145', 'effective_date': '2024-01-01'},
    {'id': 3, 'jurisdiction_id': 1, 'tax_type': 'income', 'calculation_method': 'progressive',
     'filing_status': 'single', 'pay_frequency': 'biweekly', 'effective_date': '2024-01-01'},
    {'id': 4, 'jurisdiction_id': 2, 'tax_type': 'income', 'calculation_method': 'flat_rate',
     'tax_rate': '0.0307', 'effective_date': '2024-01-01'},
    {'id': 5, 'jurisdiction_id': 2, 'tax_type': 'sui', 'calculation_method': 'percentage_with_cap',
     'tax_rate': '0.0007', 'wage_base': '10000.00', 'effective_date': '2024-01-01'},
    {'id': 6, 'jurisdiction_id': 3, 'tax_type': 'local_income', 'calculation_method': 'flat_rate',
     'tax_rate': '0.0375', 'effective_date': '2024-01-01'},
    {'id': 7, 'jurisdiction_id': 3, 'tax_type': 'occupational', 'calculation_method': 'fixed_amount',
     'fixed_amount': '2.00', 'effective_date': '2024-01-01'},
]

TAX_BRACKETS = [
    {'id': 1, 'tax_table_id': 3, 'lower_bound': '0.00', 'upper_bound': '446.15', 'rate': '0.10'},
    {'id': 2, 'tax_table_id': 3, 'lower_bound': '446.15', 'upper_bound': '1813.46', 'rate': '0.12'},
    {'id': 3, 'tax_table_id': 3, 'lower_bound': '1813.46', 'upper_bound': '3866.35', 'rate': '0.22'},
    {'id': 4, 'tax_table_id': 3, 'lower_bound': '3866.35', 'upper_bound': '7382.69', 'rate': '0.24'},
    {'id': 5, 'tax_table_id': 3, 'lower_bound': '7382.69', 'upper_bound': '9374.04', 'rate': '0.32'},
    {'id': 6, 'tax_table_id': 3, 'lower_bound': '9374.04', 'upper_bound': '23436.54', 'rate': '0.35'},
    {'id': 7, 'tax_table_id': 3, 'lower_bound': '23436.54', 'upper_bound': '', 'rate': '0.37'},
]
